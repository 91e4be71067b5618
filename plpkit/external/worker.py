"""
Child side of an external trainer session.

Run as ``python -m plpkit.external.worker``. The worker keeps one namespace
alive for its whole lifetime and serves one JSON request per stdin line,
answering with one JSON reply per stdout line:

    {"op": "ping"}                              -> {"ok": true, "pid": ...}
    {"op": "set", "values": {...}}              scalars into the namespace
    {"op": "load", "name": n, "path": p}        np.load(p) into namespace[n]
    {"op": "exec", "path": p}                   run routine p with the namespace as globals
    {"op": "dump", "name": n, "path": p}        np.save(p, namespace[n])
    {"op": "close"}                             reply, then exit

Arrays never travel over the pipe; only file paths do. Anything a routine
prints goes to stderr so stdout carries protocol replies only.
"""

import json
import logging
import os
import runpy
import sys
import traceback
from typing import Any, Dict

import numpy as np

logger = logging.getLogger("plpkit.external.worker")

ROUTINE_RUN_NAME = "__routine__"


class Worker:
    """Holds the session namespace and applies requests to it."""

    def __init__(self):
        self.namespace: Dict[str, Any] = {}

    def handle(self, request: dict) -> dict:
        op = request.get("op")

        if op == "ping":
            return {"pid": os.getpid()}

        if op == "set":
            self.namespace.update(request["values"])
            return {}

        if op == "load":
            self.namespace[request["name"]] = np.load(request["path"], allow_pickle=False)
            return {}

        if op == "exec":
            result = runpy.run_path(
                request["path"],
                init_globals=dict(self.namespace),
                run_name=ROUTINE_RUN_NAME,
            )
            self.namespace.update(
                {k: v for k, v in result.items() if not k.startswith("__")}
            )
            return {}

        if op == "dump":
            name = request["name"]
            if name not in self.namespace:
                raise KeyError(f"'{name}' is not defined in the session")
            array = np.asarray(self.namespace[name])
            np.save(request["path"], array, allow_pickle=False)
            return {"shape": list(array.shape)}

        raise ValueError(f"Unknown op: {op!r}")


def main() -> int:
    # Keep a private handle on the real stdout, then point fd 1 at stderr so
    # prints from routines (or native libraries) cannot corrupt replies.
    protocol = os.fdopen(os.dup(sys.stdout.fileno()), "w")
    os.dup2(sys.stderr.fileno(), sys.stdout.fileno())
    sys.stdout = sys.stderr

    logging.basicConfig(
        level=logging.INFO,
        stream=sys.stderr,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    worker = Worker()
    for line in sys.stdin:
        line = line.strip()
        if not line:
            continue

        closing = False
        try:
            request = json.loads(line)
            closing = request.get("op") == "close"
            reply = {"ok": True}
            if not closing:
                reply.update(worker.handle(request))
        except Exception as e:
            reply = {
                "ok": False,
                "error": f"{type(e).__name__}: {e}",
                "traceback": traceback.format_exc(),
            }

        protocol.write(json.dumps(reply) + "\n")
        protocol.flush()

        if closing:
            break

    return 0


if __name__ == "__main__":
    sys.exit(main())

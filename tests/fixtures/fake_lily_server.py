"""
Stand-in lily language server used by the end-to-end tests.

Speaks LSP framing on stdio, appends every message it receives to the file
named by LILY_STUB_LOG, and reports an error diagnostic for every line of
an opened document that contains the word "error". Closing a document
clears its diagnostics.
"""

import json
import os
import sys


def read_message(stream):
    length = None
    while True:
        line = stream.readline()
        if not line:
            return None
        line = line.strip()
        if not line:
            if length is None:
                continue
            break
        name, _, value = line.decode("ascii").partition(":")
        if name.strip().lower() == "content-length":
            length = int(value.strip())
    body = stream.read(length)
    if len(body) < length:
        return None
    return json.loads(body)


def write_message(stream, payload):
    body = json.dumps(payload).encode("utf-8")
    stream.write(b"Content-Length: %d\r\n\r\n" % len(body) + body)
    stream.flush()


def log(message):
    path = os.environ.get("LILY_STUB_LOG")
    if not path:
        return
    entry = {"pid": os.getpid(), "method": message.get("method"), "params": message.get("params")}
    with open(path, "a", encoding="utf-8") as f:
        f.write(json.dumps(entry) + "\n")


def diagnostics_for(uri, text):
    diagnostics = []
    for number, line in enumerate(text.splitlines()):
        column = line.find("error")
        if column >= 0:
            diagnostics.append(
                {
                    "range": {
                        "start": {"line": number, "character": column},
                        "end": {"line": number, "character": column + 5},
                    },
                    "severity": 1,
                    "source": "lily",
                    "code": "E001",
                    "message": "unexpected error token",
                }
            )
    return {"uri": uri, "diagnostics": diagnostics}


def main():
    stdin = sys.stdin.buffer
    stdout = sys.stdout.buffer
    shutdown_requested = False
    print("fake lily server ready", file=sys.stderr, flush=True)

    while True:
        message = read_message(stdin)
        if message is None:
            return 1
        log(message)
        method = message.get("method")
        params = message.get("params") or {}

        if method == "initialize":
            result = {"capabilities": {"textDocumentSync": 1}, "serverInfo": {"name": "fake-lily", "version": "0"}}
            write_message(stdout, {"jsonrpc": "2.0", "id": message["id"], "result": result})
        elif method == "shutdown":
            shutdown_requested = True
            write_message(stdout, {"jsonrpc": "2.0", "id": message["id"], "result": None})
        elif method == "exit":
            return 0 if shutdown_requested else 1
        elif method == "textDocument/didOpen":
            document = params["textDocument"]
            write_message(
                stdout,
                {
                    "jsonrpc": "2.0",
                    "method": "textDocument/publishDiagnostics",
                    "params": diagnostics_for(document["uri"], document["text"]),
                },
            )
        elif method == "textDocument/didClose":
            uri = params["textDocument"]["uri"]
            write_message(
                stdout,
                {"jsonrpc": "2.0", "method": "textDocument/publishDiagnostics", "params": {"uri": uri, "diagnostics": []}},
            )
        elif "id" in message:
            error = {"code": -32601, "message": f"Unhandled method {method}"}
            write_message(stdout, {"jsonrpc": "2.0", "id": message["id"], "error": error})


if __name__ == "__main__":
    sys.exit(main())

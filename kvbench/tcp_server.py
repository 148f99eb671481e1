import asyncio
import json
import os
import signal
from typing import Any, Dict, Optional, Union

from kvbench.store import KeyValueStore


class AsyncTCPServer:
    """
    JSON-line key-value server backed by an in-memory KeyValueStore.

    Every request is one JSON object per line and gets exactly one reply line.
    Replies are written in request order, so a client may pipeline many
    commands before reading.
    """

    def __init__(self, host: str = "0.0.0.0", port: int = 8000, db: Optional[KeyValueStore] = None):
        self.host = host
        self.port = port
        self.db = db if db is not None else KeyValueStore()
        self.server: Optional[asyncio.AbstractServer] = None

    async def handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        addr = writer.get_extra_info('peername')
        buffer = b""
        try:
            while True:
                data = await reader.read(65536) # 64KB buffer for larger batches
                if not data:
                    break

                buffer += data

                responses = []
                while b"\n" in buffer:
                    line_bytes, buffer = buffer.split(b"\n", 1)
                    line = line_bytes.strip()
                    if not line:
                        continue
                    responses.append(self.process_command(line))

                if responses:
                    writer.write(b"".join(json.dumps(r).encode('utf-8') + b"\n" for r in responses))
                    await writer.drain()

        except ConnectionResetError:
            pass
        except Exception as e:
            print(f"Error handling client {addr}: {e}")
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionResetError:
                pass

    def process_command(self, command_str: Union[bytes, str]) -> Dict[str, Any]:
        """Process a single JSON command, given as raw line bytes or text."""
        try:
            if isinstance(command_str, bytes):
                command_str = command_str.decode('utf-8')
            command = json.loads(command_str)
            if not isinstance(command, dict):
                return {"status": "error", "message": "Invalid JSON"}
            cmd_type = command.get("command")

            if cmd_type == "FLUSHALL":
                self.db.flush_all()
                return {"status": "success", "result": "OK"}

            if cmd_type == "KEYS":
                pattern = command.get("pattern", "*")
                return {"status": "success", "result": sorted(self.db.keys(pattern))}

            key = command.get("key")
            if not cmd_type or not key:
                return {"status": "error", "message": "Missing 'command' or 'key'"}

            if cmd_type == "SET":
                self.db.set(key, command.get("value"))
                return {"status": "success", "result": "OK"}

            elif cmd_type == "GET":
                value = self.db.get(key)
                if value is None:
                    return {"status": "error", "message": "Key not found"}
                return {"status": "success", "result": value}

            else:
                return {"status": "error", "message": f"Unknown command: {cmd_type}"}

        except (json.JSONDecodeError, UnicodeDecodeError):
            return {"status": "error", "message": "Invalid JSON"}
        except Exception as e:
            return {"status": "error", "message": str(e)}

    async def start(self):
        self.server = await asyncio.start_server(
            self.handle_client, self.host, self.port, reuse_address=True)

        addrs = ', '.join(str(sock.getsockname()) for sock in self.server.sockets)
        print(f"High-Performance Async TCP Server listening on {addrs}")

        async with self.server:
            await self.server.serve_forever()

    async def stop(self):
        if self.server is not None:
            self.server.close()
            await self.server.wait_closed()


async def main():
    host = os.getenv("KV_SERVER_HOST", "0.0.0.0")
    port = int(os.getenv("KV_SERVER_PORT", 8000))
    server = AsyncTCPServer(host=host, port=port)

    loop = asyncio.get_running_loop()
    stop_event = asyncio.Event()

    def signal_handler():
        print("\nStopping server...")
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, signal_handler)

    server_task = asyncio.create_task(server.start())
    stop_task = asyncio.create_task(stop_event.wait())
    await asyncio.wait({server_task, stop_task}, return_when=asyncio.FIRST_COMPLETED)
    stop_task.cancel()
    server_task.cancel()
    try:
        await server_task
    except asyncio.CancelledError:
        pass
    await server.stop()
    print("Shutdown complete.")


def run():
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()

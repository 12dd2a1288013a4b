#!/usr/bin/env python3
"""
Voice signaling test client for the tgvoice API

Usage:
    python voice_test_client.py <server_url> <user_id> [display_name] [bot_token]

Examples:
    python voice_test_client.py ws://localhost:8000 1 alice
    python voice_test_client.py wss://your-server.com 2 bob 123456:ABC  # signs its own initData

Commands (while connected):
    /join <room>              join a voice room
    /leave <room>             leave a voice room
    /mute <room> | /unmute <room>
    /offer <user_id> <text>   relay a session_offer with <text> as payload
    /answer <user_id> <text>  relay a session_answer
    /ice <user_id> <text>     relay an ice_candidate
    quit | exit               disconnect
"""

import asyncio
import json
import sys
import time

import websockets

from tgvoice.core.security import sign_init_data


def print_message(msg: dict) -> None:
    """Pretty print a received WebSocket message."""
    msg_type = msg.get("type", "unknown")

    print()
    print("=" * 60)

    if msg_type == "roommates":
        users = msg.get("users", [])
        print(f"👥 ROOMMATES in {msg.get('room_id')}: {len(users)}")
        for u in users:
            print(f"   {u.get('display_name')} ({u.get('user_id')}) on {u.get('connection_id')}")

    elif msg_type == "peer_joined":
        print(f"➕ {msg.get('display_name')} ({msg.get('user_id')}) joined {msg.get('room_id')}")

    elif msg_type == "peer_left":
        print(f"➖ user {msg.get('user_id')} left {msg.get('room_id')}")

    elif msg_type in ("session_offer", "session_answer", "ice_candidate"):
        print(f"📡 {msg_type.upper()} from {msg.get('from')}")
        print(f"   {json.dumps(msg.get('payload'), default=str)}")

    elif msg_type == "mute_state_changed":
        state = "muted" if msg.get("is_muted") else "unmuted"
        print(f"🎙️  user {msg.get('user_id')} {state} in {msg.get('room_id')}")

    elif msg_type == "error":
        print(f"⚠️  ERROR: {msg.get('detail')}")

    else:
        print(f"📨 UNKNOWN MESSAGE TYPE: {msg_type}")
        print(f"   {json.dumps(msg, indent=2, default=str)}")

    print("=" * 60)


def build_command(line: str) -> dict | None:
    """Translate a console command into a client message."""
    parts = line.split(maxsplit=2)
    cmd = parts[0].lower()

    if cmd == "/join" and len(parts) >= 2:
        return {"type": "join_room", "room_id": parts[1], "user_id": USER_ID, "display_name": DISPLAY_NAME}
    if cmd == "/leave" and len(parts) >= 2:
        return {"type": "leave_room", "room_id": parts[1], "user_id": USER_ID}
    if cmd in ("/mute", "/unmute") and len(parts) >= 2:
        return {"type": "set_muted", "room_id": parts[1], "is_muted": cmd == "/mute"}

    kinds = {"/offer": "session_offer", "/answer": "session_answer", "/ice": "ice_candidate"}
    if cmd in kinds and len(parts) == 3:
        return {"type": kinds[cmd], "target": int(parts[1]), "payload": {"text": parts[2]}}
    return None


async def receive_messages(websocket) -> None:
    """Task to continuously receive and print messages."""
    try:
        async for message in websocket:
            try:
                print_message(json.loads(message))
            except json.JSONDecodeError:
                print(f"\n⚠️  Received non-JSON message: {message}")
            print("\n[You] > ", end="", flush=True)
    except websockets.exceptions.ConnectionClosed as e:
        print(f"\n❌ Connection closed: {e.code} - {e.reason}")


async def send_messages(websocket) -> None:
    """Task to read console commands and send them."""
    loop = asyncio.get_running_loop()

    print("\n✅ Connected! Type /join <room> to enter a voice room.")
    print("   Type 'quit' or 'exit' to disconnect.\n")

    while True:
        try:
            print("[You] > ", end="", flush=True)
            user_input = (await loop.run_in_executor(None, sys.stdin.readline)).strip()

            if not user_input:
                continue

            if user_input.lower() in ("quit", "exit"):
                print("👋 Disconnecting...")
                await websocket.close()
                break

            try:
                msg = build_command(user_input)
            except ValueError:
                msg = None
            if msg is None:
                print("   ? unknown command, see --help")
                continue

            await websocket.send(json.dumps(msg))
            print(f"   ✓ Sent: {msg['type']}")

        except websockets.exceptions.ConnectionClosed:
            print("\n❌ Connection was closed")
            break


async def main(server_url: str, bot_token: str | None) -> None:
    ws_url = f"{server_url}/v1/voice/ws"

    print(f"🔌 Connecting to: {ws_url}")
    print("-" * 60)

    auth = {"type": "authenticate", "user_id": USER_ID, "display_name": DISPLAY_NAME}
    if bot_token:
        user = json.dumps({"id": USER_ID, "username": DISPLAY_NAME})
        auth["init_data"] = sign_init_data({"auth_date": str(int(time.time())), "user": user}, bot_token)

    try:
        async with websockets.connect(ws_url) as websocket:
            await websocket.send(json.dumps(auth))

            receive_task = asyncio.create_task(receive_messages(websocket))
            send_task = asyncio.create_task(send_messages(websocket))

            done, pending = await asyncio.wait(
                [receive_task, send_task],
                return_when=asyncio.FIRST_COMPLETED,
            )

            for task in pending:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

    except websockets.exceptions.InvalidURI as e:
        print(f"❌ Invalid URI: {e}")
        print("   Make sure the server URL starts with ws:// or wss://")
    except ConnectionRefusedError:
        print("❌ Connection refused. Is the server running?")


if __name__ == "__main__":
    if len(sys.argv) < 3 or sys.argv[1] in ("-h", "--help"):
        print(__doc__)
        sys.exit(1)

    server_url = sys.argv[1].rstrip("/")
    USER_ID = int(sys.argv[2])
    DISPLAY_NAME = sys.argv[3] if len(sys.argv) > 3 else f"user-{USER_ID}"
    bot_token = sys.argv[4] if len(sys.argv) > 4 else None

    if not server_url.startswith(("ws://", "wss://")):
        print("⚠️  Warning: URL should start with ws:// or wss://")
        print("   Assuming ws:// prefix...")
        server_url = f"ws://{server_url}"

    try:
        asyncio.run(main(server_url, bot_token))
    except KeyboardInterrupt:
        print("\n\n👋 Interrupted by user. Goodbye!")
        sys.exit(0)

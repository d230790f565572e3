#!/usr/bin/env python3
"""
WebSocket Test Client for the MonkeyChat API

Usage:
    python ws_test_client.py <server_url> --user-id <uuid> --name <display name>

Examples:
    python ws_test_client.py ws://localhost:8000 --user-id 550e8400-e29b-41d4-a716-446655440000 --name alice
    python ws_test_client.py wss://your-server.com --user-id ... --name bob

Commands (while connected):
    /find     - ask to be paired with a stranger
    /cancel   - stop searching
    /next     - leave the current room and search again
    /leave    - leave the current room
    quit      - disconnect
    Anything else is sent as a chat message to the current room.
"""

import argparse
import asyncio
import json
import sys
from dataclasses import dataclass
from datetime import datetime

import websockets


@dataclass
class Session:
    room_id: str | None = None
    partner_name: str | None = None


def format_timestamp(ts: str | datetime) -> str:
    """Format a timestamp for display."""
    if isinstance(ts, str):
        try:
            dt = datetime.fromisoformat(ts.replace("Z", "+00:00"))
            return dt.strftime("%H:%M:%S")
        except ValueError:
            return ts
    return ts.strftime("%H:%M:%S")


def print_message(msg: dict, session: Session) -> None:
    """Pretty print a received event and track room state."""
    msg_type = msg.get("type", "unknown")

    if msg_type == "join-ack":
        if msg.get("success"):
            print("✅ Joined. Type /find to look for a partner.")
        else:
            print(f"❌ Join rejected: {msg.get('error')}")

    elif msg_type == "presence-count":
        print(f"👥 {msg.get('count', '?')} user(s) online")

    elif msg_type == "match-searching":
        print("🔎 Searching for a partner...")

    elif msg_type == "match-cancelled":
        print("⏹  Search cancelled")

    elif msg_type == "matched":
        session.room_id = msg.get("roomId")
        session.partner_name = msg.get("partnerName") or "stranger"
        print(f"🤝 MATCHED with {session.partner_name} in {session.room_id}")

    elif msg_type == "message-received":
        ts = format_timestamp(msg.get("timestamp", ""))
        print(f"💬 [{ts}] {msg.get('username', 'Unknown')}: {msg.get('text', '')}")

    elif msg_type == "partner-disconnected":
        print(f"👋 {session.partner_name or 'Partner'} left the room")
        session.room_id = None
        session.partner_name = None

    elif msg_type.startswith("signal-"):
        print(f"📡 {msg_type} from {msg.get('fromConnectionId')}")

    else:
        print(f"📨 UNKNOWN EVENT: {json.dumps(msg, indent=2, default=str)}")


async def receive_messages(websocket, session: Session) -> None:
    """Task to continuously receive and print events."""
    try:
        async for message in websocket:
            try:
                print()
                print_message(json.loads(message), session)
            except json.JSONDecodeError:
                print(f"\n⚠️  Received non-JSON message: {message}")
            print("[You] > ", end="", flush=True)
    except websockets.exceptions.ConnectionClosed as e:
        print(f"\n❌ Connection closed: {e.code} - {e.reason}")


async def send_commands(websocket, session: Session) -> None:
    """Task to read user input and turn it into client events."""
    loop = asyncio.get_running_loop()

    while True:
        print("[You] > ", end="", flush=True)
        user_input = (await loop.run_in_executor(None, sys.stdin.readline)).strip()

        if not user_input:
            continue

        if user_input.lower() in ("quit", "exit"):
            print("👋 Disconnecting...")
            await websocket.close()
            break

        events: list[dict] = []
        if user_input == "/find":
            events.append({"type": "match-request"})
        elif user_input == "/cancel":
            events.append({"type": "match-cancel"})
        elif user_input in ("/leave", "/next"):
            if session.room_id:
                events.append({"type": "room-leave", "roomId": session.room_id})
                session.room_id = None
            if user_input == "/next":
                events.append({"type": "match-request"})
        elif session.room_id is None:
            print("   Not in a room. Type /find first.")
        else:
            events.append({"type": "message-send", "roomId": session.room_id, "text": user_input})

        try:
            for event in events:
                await websocket.send(json.dumps(event))
        except websockets.exceptions.ConnectionClosed:
            print("\n❌ Connection was closed")
            break


async def main(server_url: str, user_id: str, name: str) -> None:
    ws_url = f"{server_url}/v1/chat/ws"

    print(f"🔌 Connecting to: {ws_url}")
    print("-" * 60)

    session = Session()
    try:
        async with websockets.connect(ws_url) as websocket:
            await websocket.send(json.dumps({"type": "join", "userId": user_id, "displayName": name}))

            receive_task = asyncio.create_task(receive_messages(websocket, session))
            send_task = asyncio.create_task(send_commands(websocket, session))

            done, pending = await asyncio.wait(
                [receive_task, send_task],
                return_when=asyncio.FIRST_COMPLETED
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
    parser = argparse.ArgumentParser(description="Interactive MonkeyChat websocket client")
    parser.add_argument("server_url", help="e.g. ws://localhost:8000")
    parser.add_argument("--user-id", required=True, help="id of an existing user")
    parser.add_argument("--name", required=True, help="display name shown to partners")
    args = parser.parse_args()

    server_url = args.server_url.rstrip("/")
    if not server_url.startswith(("ws://", "wss://")):
        print("⚠️  Warning: URL should start with ws:// or wss://")
        print("   Assuming ws:// prefix...")
        server_url = f"ws://{server_url}"

    try:
        asyncio.run(main(server_url, args.user_id, args.name))
    except KeyboardInterrupt:
        print("\n\n👋 Interrupted by user. Goodbye!")
        sys.exit(0)

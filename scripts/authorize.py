"""Create the Telethon session file the bridge reuses on startup."""

import asyncio
import getpass
import os

from dotenv import load_dotenv
from telethon import TelegramClient
from telethon.errors import SessionPasswordNeededError


async def main() -> None:
    load_dotenv()

    api_id = os.getenv("TELEGRAM_API_ID")
    api_hash = os.getenv("TELEGRAM_API_HASH")
    session_name = os.getenv("TELEGRAM_SESSION_NAME", "telegram_session")

    if not api_id or not api_hash:
        raise RuntimeError("Set TELEGRAM_API_ID and TELEGRAM_API_HASH in the environment or a .env file.")

    client = TelegramClient(session_name, int(api_id), api_hash)
    await client.connect()

    try:
        if await client.is_user_authorized():
            print("Session already authorized.")
            return

        phone = os.getenv("TELEGRAM_PHONE") or input("Phone number with country code (e.g. +447700900123): ").strip()
        await client.send_code_request(phone)
        code = input("Login code sent by Telegram: ").strip()
        try:
            await client.sign_in(phone=phone, code=code)
        except SessionPasswordNeededError:
            password = getpass.getpass("Two-step verification password: ").strip()
            await client.sign_in(password=password)

        me = await client.get_me()
        print(f"Authorized as {getattr(me, 'username', None) or me.id}. Session saved to {session_name}.session")
    finally:
        await client.disconnect()


if __name__ == "__main__":
    asyncio.run(main())

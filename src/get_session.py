"""Interactive login for the relay account.

`authorize` is called at startup when the session is not yet authorized.
Running this module directly logs in and prints a reusable SESSION_STRING.
"""

import asyncio
import logging
import os
from getpass import getpass

import qrcode
from dotenv import load_dotenv
from telethon import TelegramClient, errors
from telethon.sessions import StringSession

from client import build_client

LOGGER = logging.getLogger(__name__)


def _print_qr(url: str) -> None:
    qr = qrcode.QRCode(border=1)
    qr.add_data(url)
    qr.make(fit=True)
    qr.print_ascii(invert=True)


def _resolve_2fa_password() -> str:
    password = os.getenv("2FA")
    if password:
        return password
    return getpass("2FA password: ")


def _resolve_phone() -> str:
    phone = os.getenv("PHONE") or os.getenv("TELEGRAM_PHONE")
    if phone:
        return phone
    return input("Phone number (international format): ").strip()


async def _authorize_with_qr(client: TelegramClient) -> None:
    qr = await client.qr_login()
    _print_qr(qr.url)
    try:
        await qr.wait(timeout=120)
    except errors.SessionPasswordNeededError:
        await client.sign_in(password=_resolve_2fa_password())


async def _authorize_with_phone(client: TelegramClient) -> None:
    phone = _resolve_phone()
    await client.send_code_request(phone)
    code = input("Login code: ").strip()
    try:
        await client.sign_in(phone=phone, code=code)
    except errors.SessionPasswordNeededError:
        await client.sign_in(password=_resolve_2fa_password())


def _pick_login_method() -> str:
    method = (os.getenv("LOGIN_METHOD") or "").strip().lower()
    if method in {"qr", "phone"}:
        return method
    while True:
        print("")
        print("Login methods:")
        print("[1] QR code")
        print("[2] Phone code")
        print("[3] Exit")
        choice = input("relay > ").strip()
        if choice == "1":
            return "qr"
        if choice == "2":
            return "phone"
        if choice == "3":
            raise SystemExit(0)
        print("Invalid option. Please choose 1, 2, or 3.")


async def authorize(client: TelegramClient) -> None:
    if await client.is_user_authorized():
        return

    if _pick_login_method() == "phone":
        await _authorize_with_phone(client)
    else:
        await _authorize_with_qr(client)

    me = await client.get_me()
    LOGGER.info("Logged in as %s", getattr(me, "username", None) or getattr(me, "first_name", me.id))


def export_session_string(client: TelegramClient) -> str:
    """Return a StringSession for the client's current auth key."""

    return StringSession.save(client.session)


async def main() -> None:
    load_dotenv()
    client = build_client()
    await client.connect()
    await authorize(client)

    print("Save this as SESSION_STRING to skip interactive login next time:")
    print(export_session_string(client))

    await client.disconnect()


if __name__ == "__main__":
    asyncio.run(main())

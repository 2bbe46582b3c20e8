"""
Signup form driven end to end without a UI.

Simulates a user typing into a nested signup form, tabbing between fields and
pressing submit, with an async "username taken" check standing in for a
server round trip.

Run with:
    python examples/signup_form.py
"""

import asyncio
import logging

from formstate import FormConfig, FormCoordinator

logger = logging.getLogger(__name__)

TAKEN_USERNAMES = {"admin", "root"}


async def check_username(username):
    """Pretend server lookup."""
    await asyncio.sleep(0.05)
    if not username:
        return "required"
    if username in TAKEN_USERNAMES:
        return f"'{username}' is taken"
    return None


def check_age(age):
    if age is None:
        return "required"
    return "must be 18 or older" if age < 18 else None


def check_passwords(values):
    """Form validator: cross-field rules."""
    password = values.get("password") or {}
    if password.get("value") != password.get("confirm"):
        return {"password.confirm": "passwords do not match"}
    return {}


async def create_account(values):
    logger.info(f"Creating account for {values['username']}")
    await asyncio.sleep(0.01)


async def main():
    config = FormConfig(debounce_ms=100)
    initial = {"username": "", "profile": {"age": None}, "password": {"value": "", "confirm": ""}}

    async with FormCoordinator(initial, validate=check_passwords, on_submit=create_account, config=config) as form:
        form.add_state_listener(
            lambda snapshot: logger.debug(f"errors={snapshot.errors} validating={snapshot.is_validating}")
        )
        form.register_field("username", check_username)
        form.register_field("profile.age", check_age)

        # Typing "admin" one keystroke at a time: only the last value is checked
        for prefix in ["a", "ad", "adm", "admi", "admin"]:
            form.on_field_change("username", prefix)
        await form.wait_idle()
        print("after typing:", form.errors)

        form.on_field_blur("username")
        form.on_field_change("profile.age", 17)
        form.on_field_change("password.value", "hunter2")
        form.on_field_change("password.confirm", "hunter3")
        form.on_field_blur("password.confirm")
        await form.wait_idle()
        print("after blur:", form.errors)

        print("first submit accepted:", await form.submit())

        form.on_field_change("username", "ada")
        form.on_field_change("profile.age", 36)
        form.on_field_change("password.confirm", "hunter2")
        print("second submit accepted:", await form.submit())
        print("final errors:", form.errors, "valid:", form.is_valid)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())

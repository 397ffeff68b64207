import bcrypt

from .errors import ValidationFailure

MIN_PIN_LENGTH = 4


def hash_pin(pin: str) -> str:
    pin = (pin or "").strip()
    if len(pin) < MIN_PIN_LENGTH:
        raise ValidationFailure(f"pin must be at least {MIN_PIN_LENGTH} digits")
    return bcrypt.hashpw(pin.encode("utf-8"), bcrypt.gensalt(rounds=12)).decode("utf-8")


def verify_pin(pin: str, pin_hash: str) -> bool:
    pin = (pin or "").strip()
    ph = (pin_hash or "").strip().encode("utf-8")
    if not pin or not ph:
        return False
    try:
        return bcrypt.checkpw(pin.encode("utf-8"), ph)
    except ValueError:
        # Malformed hash in a hand-edited config.
        return False

import re
import secrets
import string

ALPHABET = string.ascii_letters + string.digits
CODE_PATTERN = re.compile(r"^[A-Za-z0-9]{6,8}$")
DEFAULT_CODE_LENGTH = 6

def generate_random_code(length: int = DEFAULT_CODE_LENGTH) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(length))

def is_valid_code(code: str) -> bool:
    return bool(CODE_PATTERN.fullmatch(code))

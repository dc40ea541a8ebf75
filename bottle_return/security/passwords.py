from pwdlib import PasswordHash


MIN_PASSWORD_LENGTH = 8

password_hasher = PasswordHash.recommended()


def hash_password(raw_password: str) -> str:
    if len(raw_password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f'Password must be at least {MIN_PASSWORD_LENGTH} characters')
    return password_hasher.hash(raw_password)


def check_password(raw_password: str, hashed_password: str) -> tuple[bool, str | None]:
    """Verify a password; the second value is a fresh hash when the stored one uses outdated parameters."""
    return password_hasher.verify_and_update(raw_password, hashed_password)

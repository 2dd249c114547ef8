import secrets

# Uppercase alphanumerics without the easily confused I, O, 0 and 1
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def random_code(length: int) -> str:
    """Random string of `length` characters drawn from CODE_ALPHABET."""
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def new_player_id(length: int = 10) -> str:
    """Opaque per-connection player identifier."""
    return random_code(length)


def new_lobby_code(length: int = 6) -> str:
    """Short human-shareable lobby code. Uniqueness is enforced by the registry."""
    return random_code(length)

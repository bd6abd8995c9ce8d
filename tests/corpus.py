"""
Seeded random inputs for the property-style tests.
"""

import random

KEY_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789_.-"
VALUE_ALPHABET = (
    "abcXYZ019 _-./:@$%^&*()+[]{}|;,<>?!~`"
    "=#\"'\\\t\n\r"
    "éß中文🙂\x0b\x0c "
)
SEEDS = range(40)


def random_key(rng: random.Random) -> str:
    first = rng.choice(KEY_ALPHABET[:52])
    return first + "".join(rng.choice(KEY_ALPHABET) for _ in range(rng.randint(0, 12)))


def random_value(rng: random.Random) -> str:
    return "".join(rng.choice(VALUE_ALPHABET) for _ in range(rng.randint(0, 24)))


def random_map(rng: random.Random, max_size: int = 12) -> dict[str, str]:
    return {random_key(rng): random_value(rng) for _ in range(rng.randint(0, max_size))}


def random_bytes(rng: random.Random, size: int = 200) -> bytes:
    pool = [b"=", b"#", b"\n", b"\r\n", b"\"", b"'", b" ", b"\t", b"\x00", b"\xff", b"\xc3\xa9", b"KEY"]
    chunks = []
    for _ in range(rng.randint(0, size // 4)):
        if rng.random() < 0.5:
            chunks.append(rng.choice(pool))
        else:
            chunks.append(bytes([rng.randint(0, 255)]))
    return b"".join(chunks)


def random_text(rng: random.Random) -> str:
    return random_bytes(rng).decode("utf-8", errors="replace")

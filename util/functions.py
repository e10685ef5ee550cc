# util/functions.py
def join_url(base: str, path: str) -> str:
    """
    - Absolute `path` (http/https) is returned untouched.
    - Otherwise glue it to `base` with exactly one slash in between.
    """
    if path.startswith(("http://", "https://")):
        return path
    return base.rstrip("/") + "/" + path.lstrip("/")


def ceil_div(n: int, d: int) -> int:
    return -(-n // d)


def next_pow2(n: int) -> int:
    if n <= 1:
        return 1
    return 1 << (n - 1).bit_length()


def clip_body(text: str, max_chars: int = 512) -> str:
    # Upstream error bodies end up in logs and error messages; keep them short.
    text = (text or "").strip()
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + " …"

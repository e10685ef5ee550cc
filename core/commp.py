# core/commp.py
"""
Piece commitments (commP) and aggregate root commitments.

The layout follows the Filecoin unsealed-sector commitment so the PDP
service re-derives the same root ids:

- payload is Fr32-padded (127 bytes -> 128 bytes, 2 zero bits per 254-bit word)
- a binary merkle tree of 32-byte nodes is built with sha256 truncated to 254 bits
- pieces are laid out in a sector with zero-piece alignment padding and the
  resulting node stack is folded into a single root

Commitments are rendered as CIDv1 (fil-commitment-unsealed, sha2-256-trunc254-padded).
"""
import base64
import hashlib
from dataclasses import dataclass
from typing import BinaryIO, Iterable, List, Sequence, Tuple, Union
from util.errors import ComputationError
from util.functions import ceil_div, next_pow2

NODE_SIZE = 32
FR32_IN = 127
FR32_OUT = 128
MIN_PADDED_SIZE = FR32_OUT

_MASK_254 = (1 << 254) - 1

# CIDv1 prefix: version 1, codec fil-commitment-unsealed (0xf101),
# multihash sha2-256-trunc254-padded (0x1012), digest length 32.
_CID_PREFIX = bytes([0x01, 0x81, 0xE2, 0x03, 0x92, 0x20, 0x20])
_MULTIBASE_BASE32 = "b"

Readable = Union[bytes, bytearray, memoryview, BinaryIO]


@dataclass(frozen=True)
class PieceCommitment:
    commitment_id: str
    padded_size: int
    digest: bytes


def _node_hash(left: bytes, right: bytes) -> bytes:
    h = hashlib.sha256(left + right).digest()
    return h[:31] + bytes((h[31] & 0x3F,))


_ZERO_NODES: List[bytes] = [bytes(NODE_SIZE)]


def zero_node(level: int) -> bytes:
    """Root of an all-zero subtree with 2**level leaves."""
    while len(_ZERO_NODES) <= level:
        prev = _ZERO_NODES[-1]
        _ZERO_NODES.append(_node_hash(prev, prev))
    return _ZERO_NODES[level]


def zero_commitment(padded_size: int) -> bytes:
    return zero_node(_level_for(padded_size))


def _level_for(padded_size: int) -> int:
    if padded_size < NODE_SIZE or padded_size & (padded_size - 1):
        raise ComputationError(f"padded size {padded_size} is not a power of two")
    return (padded_size // NODE_SIZE).bit_length() - 1


def padded_size_for(payload_len: int) -> int:
    return max(MIN_PADDED_SIZE, next_pow2(ceil_div(payload_len, FR32_IN) * FR32_OUT))


def fr32_pad(data: bytes) -> bytes:
    """Expand every 127-byte block into four 254-bit words (little-endian bits)."""
    if len(data) % FR32_IN:
        data = data + bytes(FR32_IN - len(data) % FR32_IN)
    out = []
    for i in range(0, len(data), FR32_IN):
        x = int.from_bytes(data[i : i + FR32_IN], "little")
        for q in range(4):
            out.append(((x >> (254 * q)) & _MASK_254).to_bytes(NODE_SIZE, "little"))
    return b"".join(out)


def _tree_root(nodes: List[bytes], height: int) -> bytes:
    for level in range(height):
        if len(nodes) % 2:
            nodes.append(zero_node(level))
        nodes = [_node_hash(nodes[i], nodes[i + 1]) for i in range(0, len(nodes), 2)]
    return nodes[0]


def _read_all(source: Readable) -> bytes:
    if isinstance(source, (bytes, bytearray, memoryview)):
        return bytes(source)
    try:
        source.seek(0)
        return source.read()
    except (OSError, ValueError) as e:
        raise ComputationError(f"failed to read piece bytes: {e}") from e


def commit(source: Readable) -> PieceCommitment:
    """
    Compute (commitment_id, padded_size, digest) for one byte range.
    Raises ComputationError for an empty or unreadable range.
    """
    data = _read_all(source)
    if not data:
        raise ComputationError("cannot commit an empty byte range")

    padded = padded_size_for(len(data))
    padded_bytes = fr32_pad(data)
    view = memoryview(padded_bytes)
    leaves = [bytes(view[i : i + NODE_SIZE]) for i in range(0, len(padded_bytes), NODE_SIZE)]
    digest = _tree_root(leaves, _level_for(padded))
    return PieceCommitment(
        commitment_id=commitment_to_cid(digest), padded_size=padded, digest=digest
    )


def required_padding(offset: int, piece_size: int) -> List[int]:
    """Zero-piece sizes (ascending) that align `offset` to a multiple of `piece_size`."""
    to_fill = -offset % piece_size
    pads: List[int] = []
    while to_fill:
        low = to_fill & -to_fill
        pads.append(low)
        to_fill ^= low
    return pads


def aggregate_root_commitment(
    pieces: Sequence[Tuple[int, bytes]], sector_size: int
) -> bytes:
    """
    Fold ordered (padded_size, digest) pairs into the sector commitment.
    Pure function of its inputs.
    """
    if not pieces:
        raise ComputationError("cannot aggregate an empty piece list")
    _level_for(sector_size)

    entries: List[Tuple[int, bytes]] = []
    total = 0
    for size, digest in pieces:
        _level_for(size)
        for pad in required_padding(total, size):
            entries.append((pad, zero_commitment(pad)))
            total += pad
        entries.append((size, digest))
        total += size
    if total > sector_size:
        raise ComputationError(f"pieces span {total} bytes, sector holds {sector_size}")
    for pad in required_padding(total, sector_size):
        entries.append((pad, zero_commitment(pad)))

    stack: List[Tuple[int, bytes]] = []
    for entry in entries:
        stack.append(entry)
        while len(stack) > 1 and stack[-1][0] == stack[-2][0]:
            size, right = stack.pop()
            _, left = stack.pop()
            stack.append((size * 2, _node_hash(left, right)))

    if len(stack) != 1 or stack[0][0] != sector_size:
        raise ComputationError("piece layout did not fold into a single sector root")
    return stack[0][1]


def commitment_to_cid(digest: bytes) -> str:
    if len(digest) != NODE_SIZE:
        raise ComputationError(f"commitment digest must be {NODE_SIZE} bytes")
    encoded = base64.b32encode(_CID_PREFIX + digest).decode("ascii")
    return _MULTIBASE_BASE32 + encoded.rstrip("=").lower()


def cid_to_commitment(cid: str) -> bytes:
    """Inverse of commitment_to_cid; raises ValueError for anything else."""
    if not cid or not cid.startswith(_MULTIBASE_BASE32):
        raise ValueError(f"not a base32 commitment cid: {cid!r}")
    body = cid[1:].upper()
    try:
        raw = base64.b32decode(body + "=" * (-len(body) % 8))
    except (ValueError, TypeError) as e:
        raise ValueError(f"not a base32 commitment cid: {cid!r}") from e
    if not raw.startswith(_CID_PREFIX) or len(raw) != len(_CID_PREFIX) + NODE_SIZE:
        raise ValueError(f"not a piece commitment cid: {cid!r}")
    return raw[len(_CID_PREFIX) :]


def is_commitment_cid(cid: str) -> bool:
    try:
        cid_to_commitment(cid)
    except ValueError:
        return False
    return True


def root_cid(pieces: Iterable[Tuple[int, bytes]], sector_size: int) -> str:
    return commitment_to_cid(aggregate_root_commitment(list(pieces), sector_size))

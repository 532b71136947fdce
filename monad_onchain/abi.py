from typing import Sequence

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector, to_hex

ERC20_BALANCE_OF = "balanceOf(address)"
ERC20_ALLOWANCE = "allowance(address,address)"
ERC20_APPROVE = "approve(address,uint256)"


def selector(signature: str) -> str:
    return to_hex(function_signature_to_4byte_selector(signature))


def _arg_types(signature: str) -> list:
    inner = signature[signature.index("(") + 1 : signature.rindex(")")]
    if not inner:
        return []
    # tuples are not used by any call here, so a flat split is enough
    return inner.split(",")


def encode_call(signature: str, args: Sequence = ()) -> str:
    """Calldata for ``signature`` (e.g. "approve(address,uint256)") applied to args"""
    types = _arg_types(signature)
    if len(types) != len(args):
        raise ValueError(f"{signature} takes {len(types)} argument(s), got {len(args)}")
    data = function_signature_to_4byte_selector(signature)
    if types:
        data += encode(types, list(args))
    return to_hex(data)


def decode_uint(raw) -> int:
    """First uint256 of an eth_call result"""
    if isinstance(raw, str):
        raw = bytes.fromhex(raw[2:] if raw.startswith("0x") else raw)
    if not raw:
        return 0
    return decode(["uint256"], bytes(raw))[0]

"""
Contract Error Decoder - Revert payload to human-readable reason.

Custom errors raised by the lock contract arrive as ABI-encoded data whose
first 4 bytes identify the error.
"""

UNLOCK_ERRORS: dict[str, str] = {
    "0x17ed8646": "Membership sold out or max keys reached.",
    "0x31af6951": "Lock sold out.",
    "0x1f04ddc8": "Not enough funds.",
}

_SELECTOR_HEX_LENGTH = 8


def decode_contract_error(raw_data: str) -> str:
    """
    Map a revert payload to a readable message.

    Args:
        raw_data: Hex revert data, e.g. "0x17ed8646000000..."

    Returns:
        Known message for the selector, otherwise raw_data unchanged
    """
    payload = raw_data[2:] if raw_data[:2].lower() == "0x" else raw_data
    if len(payload) < _SELECTOR_HEX_LENGTH:
        return raw_data

    selector = "0x" + payload[:_SELECTOR_HEX_LENGTH].lower()
    return UNLOCK_ERRORS.get(selector, raw_data)

"""
Tests for the contract error decoder.
"""

from app.services.error_decoder import UNLOCK_ERRORS, decode_contract_error


class TestDecodeContractError:
    """Tests for decode_contract_error."""

    def test_sold_out_selector(self):
        """Max keys selector maps to the sold-out message."""
        raw = "0x17ed8646" + "00" * 32
        assert decode_contract_error(raw) == "Membership sold out or max keys reached."

    def test_lock_sold_out_selector(self):
        """Lock sold out selector is decoded."""
        assert decode_contract_error("0x31af6951") == "Lock sold out."

    def test_not_enough_funds_selector(self):
        """Insufficient funds selector is decoded."""
        assert decode_contract_error("0x1f04ddc8abcdef") == "Not enough funds."

    def test_selector_case_insensitive(self):
        """Upper-case hex still matches."""
        assert decode_contract_error("0x17ED8646") == "Membership sold out or max keys reached."

    def test_payload_without_prefix(self):
        """Payload without 0x prefix is accepted."""
        assert decode_contract_error("1f04ddc8") == "Not enough funds."

    def test_unknown_selector_returns_raw(self):
        """Unknown selector returns the input unchanged."""
        raw = "0xdeadbeef" + "11" * 4
        assert decode_contract_error(raw) == raw

    def test_short_payload_returns_raw(self):
        """Payload shorter than a selector returns the input unchanged."""
        assert decode_contract_error("0x17ed") == "0x17ed"

    def test_empty_payload_returns_raw(self):
        """Empty input returns empty string."""
        assert decode_contract_error("") == ""

    def test_known_table(self):
        """Exactly the three lock errors are known."""
        assert set(UNLOCK_ERRORS) == {"0x17ed8646", "0x31af6951", "0x1f04ddc8"}

from __future__ import annotations

from recurrent.errors import ErrorCode, InvalidStateError, PolicyConfigError, RecurrentError


def test_error_codes_are_deterministic() -> None:
    assert int(ErrorCode.UNSPECIFIED) == 1
    assert int(ErrorCode.INVALID_STATE) == 10
    assert int(ErrorCode.CONFIG_ERROR) == 20
    assert int(ErrorCode.VALIDATION_ERROR) == 21


def test_error_codes_are_unique() -> None:
    assert len({int(code) for code in ErrorCode}) == len(ErrorCode)


def test_specific_errors_carry_their_codes() -> None:
    assert InvalidStateError("done").code == ErrorCode.INVALID_STATE
    assert PolicyConfigError("bad").code == ErrorCode.CONFIG_ERROR
    assert PolicyConfigError("bad", code=ErrorCode.VALIDATION_ERROR).code == 21


def test_base_error_has_neutral_default_code() -> None:
    assert RecurrentError("boom").code == ErrorCode.UNSPECIFIED
    assert RecurrentError("boom").code != InvalidStateError("boom").code


def test_errors_share_a_common_base() -> None:
    assert issubclass(InvalidStateError, RecurrentError)
    assert issubclass(PolicyConfigError, RecurrentError)
    assert not issubclass(InvalidStateError, PolicyConfigError)

import pytest

from mapsjobs.errors import (
    AlreadyExistsError,
    InvalidFileNameError,
    NotFoundError,
    ValidationError,
)


def test_not_found_default_message():
    assert str(NotFoundError()) == "not found"


def test_already_exists_default_message():
    assert str(AlreadyExistsError()) == "already exists"


def test_invalid_file_name_default_message():
    assert str(InvalidFileNameError()) == "invalid file name"


def test_custom_message_is_kept():
    assert str(NotFoundError("csv file not found for job x")) == "csv file not found for job x"


def test_not_found_is_lookup_error():
    error = NotFoundError("job x")
    assert isinstance(error, LookupError)
    assert error.args == ("job x",)


@pytest.mark.parametrize("exc_type", [ValidationError, InvalidFileNameError])
def test_value_errors(exc_type):
    error = exc_type("missing id")
    assert isinstance(error, ValueError)
    assert str(error) == "missing id"
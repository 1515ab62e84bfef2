import pytest

from cronbatch.validation import FieldError, InvalidError

GROUP = "batch.tutorial.kubebuilder.io"


def test_field_error_string_holds_path_value_and_detail():
    err = FieldError("spec.schedule", "bad-schedule", "must be no more than 52 characters")
    text = str(err)
    assert text.startswith("spec.schedule: ")
    assert '"bad-schedule"' in text
    assert text.endswith(": must be no more than 52 characters")


def test_field_error_exact_format():
    err = FieldError("metadata.name", "abc", "too long")
    assert str(err) == 'metadata.name: Invalid value: "abc": too long'


def test_field_error_without_detail_ends_with_value():
    err = FieldError("spec.limit", 7)
    assert str(err).endswith(": 7")


def test_field_error_is_immutable():
    err = FieldError("metadata.name", "x", "d")
    with pytest.raises(AttributeError):
        err.detail = "other"  # type: ignore[misc]
    assert err.detail == "d"
    assert str(err) == 'metadata.name: Invalid value: "x": d'


def test_invalid_error_single_error():
    field_error = FieldError("spec.schedule", "x", "bad")
    exc = InvalidError(GROUP, "CronJob", "my-job", [field_error])
    assert exc.errors == (field_error,)
    assert exc.qualified_kind == "CronJob." + GROUP
    assert str(exc) == f'CronJob.{GROUP} "my-job" is invalid: {field_error}'


def test_invalid_error_multiple_errors_are_bracketed():
    first = FieldError("metadata.name", "n", "one")
    second = FieldError("spec.schedule", "s", "two")
    exc = InvalidError(GROUP, "CronJob", "n", [first, second])
    text = str(exc)
    assert len(exc.errors) == 2
    assert text.endswith(f"[{first}, {second}]")
    assert str(first) in text and str(second) in text


def test_invalid_error_is_raisable_as_value_error():
    field_error = FieldError("metadata.name", "n", "one")
    with pytest.raises(ValueError, match="one") as excinfo:
        raise InvalidError(GROUP, "CronJob", "n", [field_error])
    assert excinfo.value.errors == (field_error,)
    assert excinfo.value.qualified_kind == "CronJob." + GROUP


def test_invalid_error_requires_errors():
    with pytest.raises(ValueError):
        InvalidError(GROUP, "CronJob", "n", [])
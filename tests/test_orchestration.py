"""
Tests for the temp-object detour state machine.
"""

from __future__ import annotations

from typing import List

import pytest

from envelope_s3 import ObjectIdentity, OrphanedTempObjectError
from envelope_s3.orchestration import SagaState, TempObjectSaga

FINAL = ObjectIdentity("b", "doc.txt")


class Deleter:
    def __init__(self, fail: bool = False) -> None:
        self.deleted: List[ObjectIdentity] = []
        self.fail = fail

    def __call__(self, identity: ObjectIdentity) -> None:
        if self.fail:
            raise OSError("delete failed")
        self.deleted.append(identity)


def test_happy_path_reaches_cleaned_up() -> None:
    deleter = Deleter()

    with TempObjectSaga(FINAL, ".temp", deleter) as saga:
        assert saga.temp == ObjectIdentity("b", "doc.txt.temp")
        saga.written()
        saga.published("result")

    assert saga.state is SagaState.CLEANED_UP
    assert saga.result == "result"
    assert deleter.deleted == [saga.temp]


def test_steps_must_run_in_order() -> None:
    with pytest.raises(RuntimeError):
        with TempObjectSaga(FINAL, ".temp", Deleter()) as saga:
            saga.published("result")


def test_failure_before_publish_still_cleans_up() -> None:
    deleter = Deleter()

    with pytest.raises(ValueError):
        with TempObjectSaga(FINAL, ".temp", deleter) as saga:
            saga.written()
            raise ValueError("copy failed")

    assert saga.state is SagaState.WRITTEN
    assert deleter.deleted == [saga.temp]


def test_cleanup_failure_before_publish_keeps_original_error() -> None:
    with pytest.raises(ValueError, match="write failed"):
        with TempObjectSaga(FINAL, ".temp", Deleter(fail=True)):
            raise ValueError("write failed")


def test_cleanup_failure_after_publish() -> None:
    with pytest.raises(OrphanedTempObjectError) as excinfo:
        with TempObjectSaga(FINAL, ".temp", Deleter(fail=True)) as saga:
            saga.written()
            saga.published("result")

    assert excinfo.value.result == "result"
    assert excinfo.value.temp == ObjectIdentity("b", "doc.txt.temp")
    assert isinstance(excinfo.value.__cause__, OSError)


def test_cleanup_failure_without_publish_propagates() -> None:
    with pytest.raises(OSError, match="delete failed"):
        with TempObjectSaga(FINAL, ".temp", Deleter(fail=True)) as saga:
            saga.written()

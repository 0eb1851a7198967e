from __future__ import annotations

import gzip
import json
import logging

import pytest

from assessrec.core.errors import InvalidOperation, MalformedStoredData
from assessrec.models.attempt_data import (
    AssessmentVersion,
    AttemptData,
    Autosave,
    QuestionSlot,
    QuestionVersion,
    Try,
    VersionStatus,
)
from assessrec.services.codec import (
    attempt_data_to_dict,
    decode_attempt_data,
    encode_attempt_data,
    parse_attempt_data,
    stored_form,
)


def _sample() -> AttemptData:
    return AttemptData(
        submissions=[0, 35, 90],
        autosaves={1: Autosave(answers={0: "draft", 2: [1, 2]}, time=120)},
        assess_versions=[
            AssessmentVersion(
                questions=[
                    QuestionSlot(
                        question_versions=[
                            QuestionVersion(
                                question_id=101,
                                seed=1000,
                                tries=[
                                    [Try(0, 0.5, "x+1", 2.0), Try(1, 1.0, "x+2")],
                                    [Try(1, 0.0)],
                                ],
                                answer_weights=[1.0, 3.0],
                            ),
                            QuestionVersion(question_id=101, seed=9001, score_override=4.5),
                        ],
                        score=7.5,
                        raw_score=1.0,
                        scored_version=1,
                    )
                ],
                start_time=1_700_000_000,
                last_change=1_700_000_090,
                status=VersionStatus.SUBMITTED,
                score=7.5,
                time_limit_end=1_700_003_600,
            )
        ],
        scored_version=0,
        score_override=None,
    )


def test_decode_inverts_encode() -> None:
    data = _sample()
    assert parse_attempt_data(encode_attempt_data(data)) == data


def test_blob_is_gzip_json_with_stored_key_names() -> None:
    raw = json.loads(gzip.decompress(encode_attempt_data(_sample())))
    assert set(raw) == {"submissions", "autosaves", "assess_versions", "scored_version"}
    assert raw["autosaves"] == {"1": {"stuans": {"0": "draft", "2": [1, 2]}, "time": 120}}
    version = raw["assess_versions"][0]
    assert version["starttime"] == 1_700_000_000
    assert version["timelimit_end"] == 1_700_003_600
    slot = version["questions"][0]
    assert slot["rawscore"] == 1.0
    qver = slot["question_versions"][0]
    assert qver["qid"] == 101
    assert qver["answeights"] == [1.0, 3.0]
    assert qver["tries"][0][0] == {"sub": 0, "raw": 0.5, "stuans": "x+1", "stuansval": 2.0}
    assert slot["question_versions"][1]["scoreoverride"] == 4.5


def test_unset_optional_keys_are_omitted() -> None:
    raw = attempt_data_to_dict(
        AttemptData(
            assess_versions=[
                AssessmentVersion(
                    questions=[QuestionSlot([QuestionVersion(question_id=1, seed=2)])]
                )
            ],
            scored_version=None,
        )
    )
    assert "scored_version" not in raw
    assert "scoreoverride" not in raw
    version = raw["assess_versions"][0]
    assert "timelimit_end" not in version
    assert "scored_version" not in version["questions"][0]
    assert "answeights" not in version["questions"][0]["question_versions"][0]


@pytest.mark.parametrize("blob", [b"", None, gzip.compress(b"{}"), gzip.compress(b"null")])
def test_empty_input_is_empty_container(blob: bytes | None) -> None:
    assert parse_attempt_data(blob) == AttemptData()


def test_minimal_legacy_blob_gets_defaults() -> None:
    blob = gzip.compress(
        json.dumps(
            {"assess_versions": [{"questions": [{"question_versions": [{"qid": 3, "seed": 4}]}]}]}
        ).encode()
    )
    data = parse_attempt_data(blob)
    assert data.submissions == []
    assert data.scored_version is None
    qver = data.assess_versions[0].questions[0].question_versions[0]
    assert (qver.question_id, qver.seed, qver.tries) == (3, 4, [])


@pytest.mark.parametrize(
    "blob",
    [
        b"not gzip at all",
        gzip.compress(b"{truncated"),
        gzip.compress(b"[1, 2, 3]"),
        gzip.compress(json.dumps({"assess_versions": [{"questions": [{}]}]}).encode()),
        gzip.compress(
            json.dumps(
                {"assess_versions": [{"questions": [{"question_versions": [{"seed": 1}]}]}]}
            ).encode()
        ),
    ],
)
def test_strict_parse_rejects_garbage(blob: bytes) -> None:
    with pytest.raises(MalformedStoredData):
        parse_attempt_data(blob)


def test_lenient_decode_logs_and_returns_empty(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="assessrec.services.codec"):
        data = decode_attempt_data(b"\x1f\x8bgarbage", label="scored")
    assert data == AttemptData()
    assert "scored data is malformed" in caplog.text


def test_stored_form_matches_what_decode_returns() -> None:
    answer = {1: ("a", 2), "b": [None, {2.5: True}]}
    assert stored_form(answer) == {"1": ["a", 2], "b": [None, {"2.5": True}]}
    assert stored_form(answer) == json.loads(json.dumps(answer))
    assert stored_form("4") == "4"


def test_stored_form_rejects_non_json_values() -> None:
    with pytest.raises(InvalidOperation):
        stored_form({1, 2})
    with pytest.raises(InvalidOperation):
        stored_form({(1, 2): "x"})

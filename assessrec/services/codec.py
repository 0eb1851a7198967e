"""Blob codec for AttemptData: JSON, then gzip.

Stored key names are short and stable (they are what existing rows hold):

  {"submissions": [...], "autosaves": {"0": {"stuans": {...}, "time": 0}},
   "scored_version": 0, "scoreoverride": 9.5,
   "assess_versions": [{"starttime": 0, "lastchange": 0, "status": 0,
       "score": 0, "timelimit_end": 0,
       "questions": [{"score": 0, "rawscore": 0, "scored_version": 0,
           "question_versions": [{"qid": 1, "seed": 2, "answeights": [1],
               "scoreoverride": 3, "tries": [[{"sub": 0, "raw": 1,
                   "stuans": "4", "stuansval": 4}]]}]}]}]}

Optional keys are omitted when unset.  JSON object keys are strings, so
slot and part numbers in mappings are converted back to int on decode.

Decoding never fails the request: an empty blob is an empty container and a
malformed one is logged and replaced by an empty container.
"""

from __future__ import annotations

import gzip
import json
import logging
import zlib
from collections.abc import Mapping
from typing import Any

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

logger = logging.getLogger(__name__)


def stored_form(value: Any) -> Any:
    """`value` as it reads back after encode/decode.

    Tuples become lists and mapping keys become their JSON key strings.
    Anything JSON cannot hold raises InvalidOperation.
    """
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, (list, tuple)):
        return [stored_form(v) for v in value]
    if isinstance(value, Mapping):
        return {_stored_key(k): stored_form(v) for k, v in value.items()}
    raise InvalidOperation(f"cannot store a value of type {type(value).__name__}")


def _stored_key(key: Any) -> str:
    if isinstance(key, str):
        return key
    if key is None or isinstance(key, (bool, int, float)):
        return json.dumps(key)
    raise InvalidOperation(f"cannot store a mapping key of type {type(key).__name__}")


# ---------------------------------------------------------------------------
# Encode
# ---------------------------------------------------------------------------


def _try_to_dict(t: Try) -> dict[str, Any]:
    out: dict[str, Any] = {"sub": t.submission_index, "raw": t.raw_score}
    if t.student_answer is not None:
        out["stuans"] = t.student_answer
    if t.answer_value is not None:
        out["stuansval"] = t.answer_value
    return out


def _qver_to_dict(qv: QuestionVersion) -> dict[str, Any]:
    out: dict[str, Any] = {
        "qid": qv.question_id,
        "seed": qv.seed,
        "tries": [[_try_to_dict(t) for t in part] for part in qv.tries],
    }
    if qv.answer_weights is not None:
        out["answeights"] = list(qv.answer_weights)
    if qv.score_override is not None:
        out["scoreoverride"] = qv.score_override
    return out


def _slot_to_dict(slot: QuestionSlot) -> dict[str, Any]:
    out: dict[str, Any] = {
        "score": slot.score,
        "rawscore": slot.raw_score,
        "question_versions": [_qver_to_dict(qv) for qv in slot.question_versions],
    }
    if slot.scored_version is not None:
        out["scored_version"] = slot.scored_version
    return out


def _aver_to_dict(av: AssessmentVersion) -> dict[str, Any]:
    out: dict[str, Any] = {
        "starttime": av.start_time,
        "lastchange": av.last_change,
        "status": int(av.status),
        "score": av.score,
        "questions": [_slot_to_dict(s) for s in av.questions],
    }
    if av.time_limit_end is not None:
        out["timelimit_end"] = av.time_limit_end
    return out


def attempt_data_to_dict(data: AttemptData) -> dict[str, Any]:
    out: dict[str, Any] = {
        "submissions": list(data.submissions),
        "autosaves": {
            str(qn): {
                "stuans": {str(pn): ans for pn, ans in save.answers.items()},
                "time": save.time,
            }
            for qn, save in data.autosaves.items()
        },
        "assess_versions": [_aver_to_dict(av) for av in data.assess_versions],
    }
    if data.scored_version is not None:
        out["scored_version"] = data.scored_version
    if data.score_override is not None:
        out["scoreoverride"] = data.score_override
    return out


def encode_attempt_data(data: AttemptData) -> bytes:
    payload = json.dumps(attempt_data_to_dict(data), separators=(",", ":"))
    return gzip.compress(payload.encode("utf-8"))


# ---------------------------------------------------------------------------
# Decode
# ---------------------------------------------------------------------------


def _as_dict(value: Any, what: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise MalformedStoredData(f"{what} must be an object, got {type(value).__name__}")
    return value


def _as_list(value: Any, what: str) -> list[Any]:
    if not isinstance(value, list):
        raise MalformedStoredData(f"{what} must be a list, got {type(value).__name__}")
    return value


def _try_from_dict(raw: Any) -> Try:
    d = _as_dict(raw, "try")
    return Try(
        submission_index=int(d["sub"]),
        raw_score=float(d.get("raw") or 0),
        student_answer=d.get("stuans"),
        answer_value=d.get("stuansval"),
    )


def _qver_from_dict(raw: Any) -> QuestionVersion:
    d = _as_dict(raw, "question version")
    weights = d.get("answeights")
    override = d.get("scoreoverride")
    return QuestionVersion(
        question_id=int(d["qid"]),
        seed=int(d["seed"]),
        tries=[
            [_try_from_dict(t) for t in _as_list(part, "part tries")]
            for part in _as_list(d.get("tries", []), "tries")
        ],
        answer_weights=[float(w) for w in weights] if weights is not None else None,
        score_override=float(override) if override is not None else None,
    )


def _slot_from_dict(raw: Any) -> QuestionSlot:
    d = _as_dict(raw, "question")
    scored = d.get("scored_version")
    return QuestionSlot(
        question_versions=[
            _qver_from_dict(qv)
            for qv in _as_list(d.get("question_versions"), "question_versions")
        ],
        score=float(d.get("score", 0)),
        raw_score=float(d.get("rawscore", 0)),
        scored_version=int(scored) if scored is not None else None,
    )


def _aver_from_dict(raw: Any) -> AssessmentVersion:
    d = _as_dict(raw, "assessment version")
    end = d.get("timelimit_end")
    return AssessmentVersion(
        questions=[_slot_from_dict(s) for s in _as_list(d.get("questions", []), "questions")],
        start_time=int(d.get("starttime", 0)),
        last_change=int(d.get("lastchange", 0)),
        status=VersionStatus(int(d.get("status", 0))),
        score=float(d.get("score", 0)),
        time_limit_end=int(end) if end is not None else None,
    )


def attempt_data_from_dict(raw: Any) -> AttemptData:
    d = _as_dict(raw, "attempt data")
    try:
        autosaves = {
            int(qn): Autosave(
                answers={
                    int(pn): ans
                    for pn, ans in _as_dict(save.get("stuans", {}), "autosave answers").items()
                },
                time=int(save.get("time", 0)),
            )
            for qn, save in _as_dict(d.get("autosaves", {}), "autosaves").items()
        }
        scored = d.get("scored_version")
        override = d.get("scoreoverride")
        return AttemptData(
            submissions=[int(s) for s in _as_list(d.get("submissions", []), "submissions")],
            autosaves=autosaves,
            assess_versions=[
                _aver_from_dict(av)
                for av in _as_list(d.get("assess_versions", []), "assess_versions")
            ],
            scored_version=int(scored) if scored is not None else None,
            score_override=float(override) if override is not None else None,
        )
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        if isinstance(exc, MalformedStoredData):
            raise
        raise MalformedStoredData(f"invalid attempt data: {exc!r}") from exc


def parse_attempt_data(blob: bytes | None) -> AttemptData:
    """Strict decode: raises MalformedStoredData on anything but a valid blob."""
    if not blob:
        return AttemptData()
    try:
        text = gzip.decompress(blob).decode("utf-8")
        raw = json.loads(text)
    except (OSError, EOFError, zlib.error, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedStoredData(f"cannot decode stored blob: {exc}") from exc
    if raw is None or raw == [] or raw == {}:
        return AttemptData()
    return attempt_data_from_dict(raw)


def decode_attempt_data(blob: bytes | None, *, label: str = "attempt") -> AttemptData:
    """Lenient decode used at load time; bad rows become an empty container."""
    try:
        return parse_attempt_data(blob)
    except MalformedStoredData as exc:
        logger.warning("%s data is malformed, treating as empty: %s", label, exc)
        return AttemptData()

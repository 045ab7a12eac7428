"""
Unit Tests for Content Models

Tests wire aliases and the invariants enforced on provider payloads.
"""

import pytest
from pydantic import ValidationError

from conftest import label_payload, question_payload, sequence_payload, tutor_reply_payload
from nursing_study_tutor.content_models import (
    LabelPuzzleDraft,
    Question,
    QuestionSet,
    SequencePuzzle,
    SubjectArea,
    TutorReply,
)


class TestSubjectArea:

    def test_coerce_matches_value_case_insensitively(self):
        assert SubjectArea.coerce("pharmacology") == SubjectArea.PHARMACOLOGY
        assert SubjectArea.coerce("Medical-Surgical Nursing") == SubjectArea.MED_SURG

    def test_coerce_matches_member_name(self):
        assert SubjectArea.coerce("phc") == SubjectArea.PHC

    def test_unknown_subject_falls_back_to_other(self):
        assert SubjectArea.coerce("Astrology") == SubjectArea.OTHER
        assert SubjectArea.coerce(None) == SubjectArea.OTHER


class TestQuestion:

    def test_camel_case_payload_parses(self):
        question = Question.model_validate(question_payload(correct=2))
        assert question.correct_answer == 2
        assert question.is_correct(2)
        assert not question.is_correct(0)

    def test_answer_index_out_of_range_rejected(self):
        payload = question_payload()
        payload["correctAnswer"] = 4
        with pytest.raises(ValidationError):
            Question.model_validate(payload)

    def test_negative_answer_index_rejected(self):
        payload = question_payload()
        payload["correctAnswer"] = -1
        with pytest.raises(ValidationError):
            Question.model_validate(payload)

    def test_single_option_rejected(self):
        payload = question_payload(correct=0)
        payload["options"] = ["Only one"]
        with pytest.raises(ValidationError):
            Question.model_validate(payload)


class TestTutorReply:

    def test_wire_dump_uses_camel_case(self):
        reply = TutorReply.model_validate(tutor_reply_payload())
        wire = reply.to_wire()

        assert wire["topicTitle"] == "Cardiac Cycle"
        assert wire["subject"] == "Physiology"
        assert wire["practiceQuestions"][0]["correctAnswer"] == 1
        assert wire["slides"][0]["imageDescription"] == "Heart outline"

    def test_unknown_subject_is_coerced(self):
        reply = TutorReply.model_validate(tutor_reply_payload(subject="Nursing Informatics"))
        assert reply.subject == SubjectArea.OTHER

    def test_extra_keys_are_ignored(self):
        payload = tutor_reply_payload()
        payload["mnemonic"] = "SAD"
        reply = TutorReply.model_validate(payload)
        assert "mnemonic" not in reply.to_wire()

    def test_missing_field_rejected(self):
        payload = tutor_reply_payload()
        del payload["examFocus"]
        with pytest.raises(ValidationError):
            TutorReply.model_validate(payload)

    def test_duplicate_question_ids_rejected(self):
        payload = tutor_reply_payload()
        payload["practiceQuestions"] = [question_payload("q1"), question_payload("q1")]
        with pytest.raises(ValidationError):
            TutorReply.model_validate(payload)


class TestQuestionSet:

    def test_empty_set_rejected(self):
        with pytest.raises(ValidationError):
            QuestionSet.model_validate({"questions": []})


class TestSequencePuzzle:

    def test_valid_orders_accepted(self):
        puzzle = SequencePuzzle.model_validate(sequence_payload())
        assert [step.order for step in puzzle.steps] == [0, 1, 2, 3]

    def test_gap_in_orders_rejected(self):
        payload = sequence_payload()
        payload["steps"][3]["order"] = 5
        with pytest.raises(ValidationError):
            SequencePuzzle.model_validate(payload)

    def test_duplicate_orders_rejected(self):
        payload = sequence_payload()
        payload["steps"][1]["order"] = 0
        with pytest.raises(ValidationError):
            SequencePuzzle.model_validate(payload)

    def test_single_step_rejected(self):
        payload = sequence_payload()
        payload["steps"] = payload["steps"][:1]
        with pytest.raises(ValidationError):
            SequencePuzzle.model_validate(payload)


class TestLabelPuzzleDraft:

    def test_valid_draft(self):
        draft = LabelPuzzleDraft.model_validate(label_payload())
        assert draft.image_prompt == "Cross-section of a human kidney"
        assert len(draft.parts) == 3

    def test_duplicate_labels_rejected(self):
        payload = label_payload()
        payload["parts"][1]["label"] = "Cortex"
        with pytest.raises(ValidationError):
            LabelPuzzleDraft.model_validate(payload)

    def test_duplicate_part_ids_rejected(self):
        payload = label_payload()
        payload["parts"][2]["id"] = "p1"
        with pytest.raises(ValidationError):
            LabelPuzzleDraft.model_validate(payload)

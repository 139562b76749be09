"""Tests for the draft payload builder."""

import pytest
from pydantic import ValidationError

from coursewizard.wizard.payload import (
    DEFAULT_DESCRIPTION,
    UNTITLED_COURSE,
    build_draft_payload,
    prepare_modules,
    resource_type,
)
from coursewizard.wizard.session import WizardSession
from coursewizard.wizard.snapshots import ADDITIONAL_STEP, PAYMENT_STEP, CURRENCIES, PaymentDetails
from coursewizard.wizard.steps import AdditionalDetailsStep, PaymentDetailsStep


def test_absent_fields_get_documented_defaults():
    payload = build_draft_payload(WizardSession({"title": "Intro to Python"}))

    assert payload.name == "Intro to Python"
    assert payload.description == "Course: Intro to Python"
    assert payload.category == "NA"
    assert payload.level == "NA"
    assert payload.language == "NA"
    assert payload.visibility == "Public"
    assert payload.status == "Draft"
    assert payload.modules == ()


def test_untitled_course_defaults():
    payload = build_draft_payload(WizardSession({"category": "Programming"}))

    assert payload.name == UNTITLED_COURSE
    assert payload.description == DEFAULT_DESCRIPTION
    assert payload.has_title is False


def test_disabled_groups_are_sent_explicitly():
    body = build_draft_payload(WizardSession({"title": "X"})).to_request_body()

    assert body["certificate"]["enabled"] is False
    assert body["pricing"]["globalPricingEnabled"] is False
    assert body["pricing"]["enabledCurrencies"] == {code: False for code in CURRENCIES}
    assert body["pricing"]["listedPrice"] == {code: 0.0 for code in CURRENCIES}
    assert body["additionalDetails"] == {
        "faqs": [],
        "affiliateActive": False,
        "affiliateRewardPercentage": 0.0,
        "watermarkRemovalEnabled": False,
    }


def test_request_body_is_camel_case_without_identifier():
    session = WizardSession({"title": "X", "cover": "https://cdn.test/cover.png"}, resource_id="abc123")
    payload = build_draft_payload(session)
    body = payload.to_request_body()

    assert payload.resource_id == "abc123"
    assert "resourceId" not in body
    assert "resource_id" not in body
    assert body["coverImage"] == "https://cdn.test/cover.png"


def test_payload_is_immutable_and_rebuilt_every_time():
    session = WizardSession({"title": "X"})
    first = build_draft_payload(session)
    with pytest.raises(ValidationError):
        first.name = "Y"

    session.set("title", "Y")
    second = build_draft_payload(session)
    assert second is not first
    assert first.name == "X"
    assert second.name == "Y"


def test_tags_are_trimmed_and_blank_ones_dropped():
    payload = build_draft_payload(WizardSession({"title": "X", "tags": [" python ", "", "  "]}))
    assert payload.tags == ("python",)


def test_untitled_modules_and_lessons_are_dropped_and_ordered():
    modules = prepare_modules(
        [
            {"title": "", "lessons": [{"title": "Orphan"}]},
            {
                "title": "Basics",
                "lessons": [
                    {"title": "   "},
                    {"title": "Variables", "duration": "-5"},
                    {"title": "Loops", "duration": "12", "type": "Text", "description": "for and while"},
                ],
            },
        ]
    )

    assert len(modules) == 1
    basics = modules[0]
    assert basics.order == 1
    assert [lesson.title for lesson in basics.lessons] == ["Variables", "Loops"]
    assert [lesson.order for lesson in basics.lessons] == [1, 2]
    assert basics.lessons[0].duration == 0
    assert basics.lessons[0].type == "Video"
    assert basics.lessons[1].content["textContent"] == "for and while"


def test_quiz_questions_get_a_correct_answer():
    modules = prepare_modules(
        [
            {
                "title": "Check",
                "lessons": [
                    {
                        "title": "Quiz 1",
                        "type": "Quiz",
                        "timeLimit": "15",
                        "quizQuestions": [
                            {
                                "question": "2 + 2?",
                                "type": "single",
                                "options": [{"text": "3"}, {"text": "4", "isCorrect": True}, {"text": ""}],
                            },
                            {
                                "question": "Primes?",
                                "type": "multiple",
                                "options": [{"text": "2"}, {"text": "9"}],
                                "points": 5,
                            },
                            {"question": "", "type": "single"},
                        ],
                    }
                ],
            }
        ]
    )

    content = modules[0].lessons[0].content
    assert content["timeLimit"] == 15
    assert len(content["questions"]) == 2
    single, multiple = content["questions"]
    assert single == {
        "question": "2 + 2?",
        "type": "multiple-choice",
        "options": ["3", "4"],
        "correctAnswer": "4",
        "points": 10,
    }
    assert multiple["correctAnswer"] == ["2"]
    assert multiple["points"] == 5


def test_live_lesson_end_time_follows_duration():
    modules = prepare_modules(
        [
            {
                "title": "Live",
                "lessons": [
                    {
                        "title": "Office hours",
                        "type": "Live",
                        "liveFields": {
                            "startDateTime": "2026-03-01T10:00:00",
                            "duration": 90,
                            "customLink": "https://meet.test/abc",
                            "meetingLink": "Zoom",
                        },
                    }
                ],
            }
        ]
    )

    content = modules[0].lessons[0].content
    assert content["meetingLink"] == "https://meet.test/abc"
    assert content["meetingPlatform"] == "Zoom"
    assert content["startDateTime"] == "2026-03-01T10:00:00"
    assert content["endDateTime"] == "2026-03-01T11:30:00"


def test_live_lesson_with_out_of_range_duration_has_no_end_time():
    modules = prepare_modules(
        [
            {
                "title": "Live",
                "lessons": [
                    {
                        "title": "Office hours",
                        "type": "Live",
                        "liveFields": {"startDateTime": "2026-03-01T10:00:00", "duration": "1e300"},
                    }
                ],
            }
        ]
    )

    content = modules[0].lessons[0].content
    assert content["startDateTime"] == "2026-03-01T10:00:00"
    assert "endDateTime" not in content


def test_lesson_resources_are_typed_by_extension():
    modules = prepare_modules(
        [
            {
                "title": "M",
                "lessons": [
                    {
                        "title": "L",
                        "resources": [
                            {"name": "slides.PDF", "url": "/files/slides.pdf", "size": "2048"},
                            {"originalName": "data.bin"},
                        ],
                    }
                ],
            }
        ]
    )

    slides, data = modules[0].lessons[0].resources
    assert slides.type == "document"
    assert slides.size == 2048
    assert data.name == "data.bin"
    assert data.type == "other"


@pytest.mark.parametrize(
    "file_name, expected",
    [("intro.mp4", "video"), ("logo.svg", "image"), ("talk.m4a", "audio"), ("src.tar", "archive"), ("README", "other")],
)
def test_resource_type(file_name, expected):
    assert resource_type(file_name) == expected


def test_certificate_is_clamped_and_filled_in():
    session = WizardSession(
        {
            "title": "X",
            "certificate_enabled": True,
            "completion_percentage": 150,
            "certificate_title": "  ",
            "signatures": [{"name": "Dean", "enabled": True}, {"name": "Hidden", "enabled": False}],
        }
    )
    certificate = build_draft_payload(session).certificate

    assert certificate.enabled is True
    assert certificate.completion_percentage == 100
    assert certificate.title == "Certificate of Completion"
    assert [s["name"] for s in certificate.signatures] == ["Dean"]


def test_fresh_snapshot_reflects_latest_step_edits(registry):
    payment = PaymentDetailsStep()
    payment.mount(registry)
    payment.set_global_prices("-5", "12.5")

    pricing = build_draft_payload(WizardSession({"title": "X"}), registry).pricing

    assert pricing.listed_price["INR"] == 0.0
    assert pricing.selling_price["EUR"] == 12.5
    assert pricing.global_pricing_enabled is True


def test_unmounted_step_falls_back_to_its_last_snapshot(registry):
    payment = PaymentDetailsStep()
    payment.mount(registry)
    payment.set_global_prices("40", "30")
    payment.unmount(registry)

    pricing = build_draft_payload(WizardSession({"title": "X"}), registry).pricing

    assert pricing.listed_price == {code: 40.0 for code in CURRENCIES}
    assert pricing.selling_price["USD"] == 30.0


def test_seeded_snapshot_survives_until_step_mounts(registry):
    stored = PaymentDetails.model_validate(
        {"listedPrice": {"INR": 99}, "sellingPrice": {"INR": 49}, "globalPricingEnabled": True}
    )
    registry.seed(PAYMENT_STEP, stored)

    pricing = build_draft_payload(WizardSession({"title": "X"}), registry).pricing
    assert pricing.listed_price["INR"] == 99.0


def test_additional_details_are_clamped(registry):
    additional = AdditionalDetailsStep()
    additional.mount(registry)
    additional.set_affiliate(True, "150")
    additional.set_faq(0, question="Refunds?", answer="Within 30 days.")

    payload = build_draft_payload(WizardSession({"title": "X"}), registry)

    assert payload.additional_details.affiliate_active is True
    assert payload.additional_details.affiliate_reward_percentage == 100.0
    assert [f.question for f in payload.additional_details.faqs] == ["Refunds?"]
    assert registry.cached(ADDITIONAL_STEP) == payload.additional_details

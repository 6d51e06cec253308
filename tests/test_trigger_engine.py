"""
触发引擎单元测试

测试 sage_relay/services/trigger_engine.py 中的规则优先级与词表匹配
"""

from datetime import datetime, timedelta

import pytest

from sage_relay.models.conversation_state import ConversationTracker, ResponseType
from sage_relay.models.session import Message, SenderKind
from sage_relay.services.trigger_engine import (
    INTERVENTION_MESSAGE,
    TriggerThresholds,
    Urgency,
    detect_emotional_content,
    detect_heated_language,
    evaluate_triggers,
    sender_streak,
    window_is_heated,
)

NOW = datetime(2025, 1, 1, 12, 0, 0)


def participant(msg_id, sender, content):
    return Message(
        id=msg_id,
        content=content,
        sender=sender,
        sender_kind=SenderKind.PARTICIPANT,
        sender_name=sender.title(),
    )


def facilitator(msg_id, content="Let's slow down."):
    return Message(
        id=msg_id,
        content=content,
        sender="facilitator",
        sender_kind=SenderKind.FACILITATOR,
        sender_name="Sage",
    )


def tracker_after(senders, now=NOW):
    tracker = ConversationTracker(last_facilitator_time=now)
    for sender in senders:
        tracker.record_participant_message(sender)
    return tracker


class TestLexicon:
    """词表匹配"""

    @pytest.mark.parametrize("content", [
        "You ALWAYS say that",
        "this is ridiculous",
        "I'm sick of it",
    ])
    def test_heated(self, content):
        assert detect_heated_language(content)

    def test_heated_is_substring_match(self):
        # 子串匹配: "hated" 命中 "hate"
        assert detect_heated_language("I hated that")
        assert not detect_heated_language("sounds good to me")

    def test_emotional(self):
        assert detect_emotional_content("I Feel like you don't listen")
        assert detect_emotional_content("I miss how things were")
        assert not detect_emotional_content("pass the salt")


class TestWindowHelpers:
    """窗口辅助函数"""

    def test_sender_streak_stops_at_other_sender(self):
        window = [
            participant(1, "alex", "a"),
            participant(2, "blair", "b"),
            participant(3, "alex", "c"),
            participant(4, "alex", "d"),
        ]
        assert sender_streak(window, "alex") == 2
        assert sender_streak(window, "blair") == 0

    def test_facilitator_breaks_streak(self):
        window = [participant(1, "alex", "a"), facilitator(2), participant(3, "alex", "b")]
        assert sender_streak(window, "alex") == 1

    def test_window_heat_ignores_facilitator(self):
        window = [facilitator(1, "You always matter here"), participant(2, "alex", "ok")]
        assert not window_is_heated(window)


class TestRulePriority:
    """规则优先级"""

    def test_intervention(self):
        recent = [participant(1, "alex", "you never listen"), participant(2, "alex", "hello?")]
        decision = evaluate_triggers(recent[-1], tracker_after(["alex", "alex"]), recent, now=NOW)

        assert decision.response_type == ResponseType.INTERVENTION
        assert decision.urgency == Urgency.IMMEDIATE
        assert decision.fixed_content == INTERVENTION_MESSAGE

    def test_intervention_requires_streak(self):
        recent = [participant(1, "blair", "you never listen"), participant(2, "alex", "what?")]
        decision = evaluate_triggers(recent[-1], tracker_after(["blair", "alex"]), recent, now=NOW)
        assert decision is None

    def test_intervention_beats_redirect(self):
        recent = [participant(i, "alex", "I hate this") for i in range(1, 4)]
        decision = evaluate_triggers(recent[-1], tracker_after(["alex"] * 3), recent, now=NOW)
        assert decision.response_type == ResponseType.INTERVENTION

    def test_redirect(self):
        recent = [participant(i, "alex", "point") for i in range(1, 4)]
        decision = evaluate_triggers(recent[-1], tracker_after(["alex"] * 3), recent, now=NOW)
        assert decision.response_type == ResponseType.REDIRECT
        assert decision.urgency == Urgency.NORMAL

    def test_checkin_after_many_messages(self):
        senders = ["alex", "blair"] * 4
        recent = [participant(i + 1, s, "sure") for i, s in enumerate(senders)]
        decision = evaluate_triggers(recent[-1], tracker_after(senders), recent, now=NOW)
        assert decision.response_type == ResponseType.CHECKIN

    def test_checkin_beats_deescalate(self):
        senders = ["alex", "blair"] * 4
        recent = [participant(i + 1, s, "sure") for i, s in enumerate(senders)]
        recent[-1] = participant(8, "blair", "that's crazy")
        decision = evaluate_triggers(recent[-1], tracker_after(senders), recent, now=NOW)
        assert decision.response_type == ResponseType.CHECKIN

    def test_deescalate(self):
        recent = [participant(1, "alex", "this is stupid")]
        decision = evaluate_triggers(recent[-1], tracker_after(["alex"]), recent, now=NOW)
        assert decision.response_type == ResponseType.DEESCALATE
        assert decision.fixed_content is None

    def test_checkin_after_silence(self):
        tracker = tracker_after(["alex"], now=NOW - timedelta(minutes=5))
        recent = [participant(1, "alex", "anyway")]
        decision = evaluate_triggers(recent[-1], tracker, recent, now=NOW)
        assert decision.response_type == ResponseType.CHECKIN

    def test_support_needs_three_messages(self):
        recent = [participant(1, "alex", "I feel sad")]
        assert evaluate_triggers(recent[-1], tracker_after(["alex"]), recent, now=NOW) is None

        senders = ["blair", "alex", "blair"]
        recent = [
            participant(1, "blair", "hi"),
            participant(2, "alex", "hey"),
            participant(3, "blair", "I feel sad"),
        ]
        decision = evaluate_triggers(recent[-1], tracker_after(senders), recent, now=NOW)
        assert decision.response_type == ResponseType.SUPPORT

    def test_quiet_conversation(self):
        recent = [participant(1, "alex", "morning"), participant(2, "blair", "morning")]
        assert evaluate_triggers(recent[-1], tracker_after(["alex", "blair"]), recent, now=NOW) is None

    def test_only_last_five_entries_count(self):
        recent = [participant(1, "blair", "you never listen")] + [
            participant(i, "alex" if i % 2 else "blair", "fine") for i in range(2, 7)
        ]
        recent[-1] = participant(6, "alex", "fine")
        recent[-2] = participant(5, "alex", "fine")
        # 激烈措辞已滑出窗口
        decision = evaluate_triggers(
            recent[-1], tracker_after(["alex", "alex"]), recent, now=NOW
        )
        assert decision is None

    def test_custom_thresholds(self):
        thresholds = TriggerThresholds(redirect_streak=2)
        recent = [participant(1, "alex", "one"), participant(2, "alex", "two")]
        decision = evaluate_triggers(
            recent[-1], tracker_after(["alex", "alex"]), recent, now=NOW, thresholds=thresholds
        )
        assert decision.response_type == ResponseType.REDIRECT

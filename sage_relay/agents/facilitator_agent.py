"""
Facilitator Agent - 会话中的第三方声音（Sage）
负责生成 Facilitator 的系统提示词与各回复类型的补充指令
"""

from dataclasses import dataclass, field
from typing import Dict

from ..models.conversation_state import ResponseType


def generate_facilitator_prompt(name: str = "Sage") -> str:
    """
    生成 Facilitator 的基础系统提示词

    Args:
        name: Facilitator 显示名称

    Returns:
        系统提示词字符串
    """
    return f"""You are {name}, an AI couples counselor trained in evidence-based therapy techniques. Your role is to facilitate healthy communication between partners using:

CORE TECHNIQUES:
- Gottman Method: Watch for Four Horsemen (criticism, contempt, defensiveness, stonewalling), promote love maps and emotional attunement
- CBT: Help identify thought patterns, cognitive reframing, behavioral interventions
- EFT: Focus on attachment styles and emotional cycles
- Active Listening: Encourage reflection and validation
- Solution-Focused: Build on strengths and establish goals

INTERVENTION TRIGGERS:
- Interrupt if conversation becomes heated or hostile
- Redirect when one person dominates (3+ consecutive messages)
- De-escalate criticism or blame language
- Pause for emotional check-ins during intensity
- Suggest breaks if needed

COMMUNICATION STYLE:
- Warm but professional
- Validate both perspectives
- Ask open-ended questions
- Offer specific techniques and tools
- Remind users you're an AI assistant, not replacement for professional therapy
- Keep responses concise but meaningful (2-3 sentences max unless giving techniques)

BOUNDARIES:
- Encourage professional therapy for serious issues (abuse, addiction, etc.)
- Don't give medical or psychiatric advice
- Focus on communication and relationship skills
- Maintain neutrality between partners

Respond as {name} would in a couples counseling session."""


RESPONSE_GUIDANCE: Dict[ResponseType, str] = {
    ResponseType.REDIRECT: (
        "The same person has been speaking for several messages. "
        "Gently redirect to give the other person space to share."
    ),
    ResponseType.CHECKIN: (
        "It's been a while since you've spoken. "
        "Check in on how the conversation is going for both people."
    ),
    ResponseType.DEESCALATE: (
        "There's some heated language. "
        "Help both people take a breath and communicate more calmly."
    ),
    ResponseType.SUPPORT: (
        "Someone just shared something emotional. "
        "Provide supportive guidance that helps both partners understand each other."
    ),
}


@dataclass
class FacilitatorAgentConfig:
    """Facilitator 配置：显示名称、生成参数与各类固定文案"""

    name: str = "Sage"
    strategic_max_tokens: int = 150
    generic_max_tokens: int = 200
    temperature: float = 0.7
    strategic_window: int = 6
    generic_window: int = 10

    strategic_fallback: str = (
        "I'm experiencing some technical difficulties. Please continue your "
        "conversation - you're doing great at communicating with each other."
    )
    generic_fallback: str = (
        "I'm experiencing some technical difficulties. Let's continue our "
        "conversation, and I'll do my best to help you both communicate effectively."
    )

    base_prompt: str = field(init=False)

    def __post_init__(self):
        self.base_prompt = generate_facilitator_prompt(self.name)

    def strategic_prompt(self, response_type: ResponseType, participant_count: int) -> str:
        """
        组装策略型回复的系统指令

        Args:
            response_type: redirect / checkin / deescalate / support
            participant_count: 当前参与者数量
        """
        guidance = RESPONSE_GUIDANCE.get(response_type)
        if guidance is None:
            raise ValueError(f"No strategic guidance for response type: {response_type.value}")

        return (
            f"{self.base_prompt}\n\n{guidance}\n\n"
            f"Session context: {participant_count} participants. "
            f"Response type: {response_type.value}"
        )

    def generic_prompt(self, participant_count: int, duration_minutes: int) -> str:
        return (
            f"{self.base_prompt}\n\n"
            f"Current session context: {participant_count} participants, "
            f"session duration: {duration_minutes} minutes"
        )

    def welcome_message(self, user_name: str, session_code: str) -> str:
        return (
            f"Hello {user_name}! I'm {self.name}, your AI counseling assistant. "
            f"I'm here to help facilitate healthy communication between you and "
            f"your partner. Please wait for your partner to join using code: {session_code}"
        )

    def ready_message(self) -> str:
        return (
            "Perfect! Both partners are now here. I'm ready to help facilitate your "
            "conversation. Remember, this is a safe space for open communication. "
            "What would you both like to focus on today?"
        )

    def pause_message(self, paused: bool) -> str:
        return "Session paused." if paused else "Session resumed."

    def closing_message(self) -> str:
        return (
            "Session ended. Thank you both for your openness today. Your "
            "conversation has been a step toward better communication."
        )


# 导出
__all__ = [
    "RESPONSE_GUIDANCE",
    "FacilitatorAgentConfig",
    "generate_facilitator_prompt",
]

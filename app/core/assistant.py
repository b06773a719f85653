"""
HR chat assistant.

The system prompt is picked from ROLE_PROMPTS by the caller's role (explicit,
or parsed from a "Role: x" line in the context; employee otherwise). With an
OpenAI key the chat completion answers; without one, or when the call fails,
the reply comes from the keyword table in FALLBACK_RULES.
"""
import logging
import re
from typing import Optional

from app.core.config import get_settings
from app.models.schemas import UserRole

logger = logging.getLogger(__name__)
settings = get_settings()

_GUIDANCE = "Always direct users to the appropriate HR360 modules for actions they need to take."

ROLE_PROMPTS: dict[UserRole, str] = {
    UserRole.HR: (
        "You are an HR assistant for HR360. Handle employee queries related to attendance, "
        "leave approvals, payroll management and the exit process. You can also help schedule "
        "interviews, review screened candidates and manage recruitment.\n" + _GUIDANCE
    ),
    UserRole.ADMIN: (
        "You are an Admin assistant for HR360. Help with user management, role permissions, "
        "mailbox configuration for automatic CV processing and system monitoring tasks.\n"
        "Always direct users to the appropriate system modules for actions they need to take."
    ),
    UserRole.EMPLOYEE: (
        "You are an HR query assistant for employees in HR360. Help with personal HR questions "
        "such as leave requests, leave policies, attendance records, salary details and the "
        "clearance process. Give clear, actionable answers and refer complex issues to HR.\n" + _GUIDANCE
    ),
    UserRole.CANDIDATE: (
        "You are a recruitment assistant for HR360. Help candidates with job applications, "
        "available openings, interview schedules and application status tracking. "
        "Be encouraging and professional.\n" + _GUIDANCE
    ),
}

_ROLE_RE = re.compile(r"Role:\s*(\w+)", re.IGNORECASE)

_CAPABILITIES = (
    "I can assist you with:\n"
    "- Leave applications and policies\n"
    "- Attendance tracking and reports\n"
    "- Payroll and salary information\n"
    "- Performance reviews and goals\n"
    "- Company policies and benefits\n"
    "- Recruitment and onboarding"
)

# (trigger words, reply). The first rule with a matching word wins.
FALLBACK_RULES: list[tuple[tuple[str, ...], str]] = [
    (("hello", "hi", "hey", "greetings"),
     "Hello! I'm your HR360 assistant. What can I help you with today?"),
    (("thanks", "thank"),
     "You're very welcome! Ask anytime if you need more help with HR360."),
    (("bye", "goodbye"),
     "Goodbye! I'm always here in HR360 if you need HR assistance."),
    (("leave", "vacation", "holiday"),
     "To apply for leave open the Leave Management module, choose the leave type and dates, "
     "add a reason and submit it for manager approval. Your balance is shown on the same page."),
    (("attendance", "clock"),
     "Use the Attendance module to clock in and out. Daily hours, overtime and monthly "
     "summaries are calculated automatically."),
    (("payroll", "salary", "payslip", "pay"),
     "Payslips and salary breakdowns are in the Payroll Management module. Contact Finance "
     "for questions about deductions or allowances."),
    (("performance", "review", "appraisal", "goal"),
     "The Performance Management module shows your reviews, scores and goals, including "
     "manager feedback and development plans."),
    (("benefit", "benefits", "insurance", "health"),
     "Benefits include health insurance, retirement plans, paid time off and a professional "
     "development allowance. HR can confirm your coverage details."),
    (("policy", "policies", "handbook"),
     "Company policies, including the code of conduct and remote work rules, are in the "
     "Employee Handbook. Contact HR for specific interpretations."),
    (("resume", "cv", "application", "apply", "candidate", "interview", "hire", "recruit"),
     "Applications are screened automatically: CVs sent to the HR mailbox are parsed, scored "
     "and added to the candidate list. Interviews are arranged through Interview Scheduling, "
     "and HR can tell you where an application stands."),
    (("help", "support", "assist"),
     "I'm here to help! " + _CAPABILITIES),
]

DEFAULT_REPLY = "I'm your HR360 assistant, here to help with HR questions. " + _CAPABILITIES
NO_ANSWER = "I'm sorry, I couldn't process your request. Please contact HR directly."

_WORD_RE = re.compile(r"[a-z]+")


def resolve_role(role: Optional[UserRole] = None, context: Optional[str] = None) -> UserRole:
    if role is not None:
        return UserRole(role)
    match = _ROLE_RE.search(context or "")
    if match:
        try:
            return UserRole(match.group(1).lower())
        except ValueError:
            pass
    return UserRole.EMPLOYEE


def fallback_reply(message: str) -> str:
    words = set(_WORD_RE.findall(message.lower()))
    for triggers, reply in FALLBACK_RULES:
        if words.intersection(triggers):
            return reply
    return DEFAULT_REPLY


class HRAssistant:

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.api_key = settings.OPENAI_API_KEY if api_key is None else api_key
        self.model = model or settings.OPENAI_CHAT_MODEL
        self.base_url = base_url or settings.OPENAI_BASE_URL
        self.timeout = timeout or settings.OPENAI_TIMEOUT_SECONDS

    async def reply(
        self,
        message: str,
        role: Optional[UserRole] = None,
        context: Optional[str] = None,
    ) -> tuple[UserRole, str]:
        user_role = resolve_role(role, context)
        if not self.api_key:
            return user_role, fallback_reply(message)

        system_prompt = ROLE_PROMPTS[user_role]
        if context:
            system_prompt += f"\n\nContext: {context}"

        try:
            import openai
            client = openai.AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
            )
            resp = await client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": message},
                ],
                temperature=0.7,
                max_tokens=600,
            )
            return user_role, resp.choices[0].message.content or NO_ANSWER
        except Exception as exc:
            logger.warning("Assistant chat failed, using canned reply: %s", exc)
            return user_role, fallback_reply(message)

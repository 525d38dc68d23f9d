"""Prompt builders for follow-up emails and social posts."""

from __future__ import annotations

from src.notetaker.content.schemas import Automation, SocialPlatform
from src.notetaker.events.schemas import MeetingEvent

# ── System Prompts ───────────────────────────────────────────────────────────

FOLLOW_UP_EMAIL_SYSTEM_PROMPT = (
    "You are a professional assistant helping to write follow-up emails after "
    "meetings. Write a warm, professional email that recaps what was discussed "
    "in the meeting."
)

AUTOMATION_POST_SYSTEM_PROMPT = (
    "You are a professional social media content creator. Generate engaging "
    "social media posts based on meeting insights."
)

PLATFORM_VIBES: dict[SocialPlatform, str] = {
    SocialPlatform.LINKEDIN: "professional, business-focused, thought leadership style",
    SocialPlatform.FACEBOOK: "casual, engaging, community-focused style",
}

PLATFORM_GUIDELINES: dict[SocialPlatform, str] = {
    SocialPlatform.LINKEDIN: (
        "- Is professional and business-focused\n"
        "- Highlights key insights or takeaways\n"
        "- Uses appropriate LinkedIn tone and format\n"
        "- Is engaging but not overly casual"
    ),
    SocialPlatform.FACEBOOK: (
        "- Is casual and engaging\n"
        "- Connects with the community\n"
        "- Uses appropriate Facebook tone and format\n"
        "- Is friendly and approachable"
    ),
}


def _meeting_date(event: MeetingEvent) -> str:
    return event.start_time.strftime("%Y-%m-%d")


# ── Builders ─────────────────────────────────────────────────────────────────


def build_follow_up_email_prompt(event: MeetingEvent, transcript_text: str) -> str:
    attendees = ", ".join(event.attendees) if event.attendees else "Not specified"
    return f"""Based on the following meeting transcript, generate a follow-up email that recaps what was discussed.

Meeting Title: {event.title}
Meeting Date: {_meeting_date(event)}
Attendees: {attendees}

Transcript:
{transcript_text}

Generate a professional follow-up email that:
1. Thanks the attendees for their time
2. Summarizes the key points discussed
3. Includes any action items or next steps mentioned
4. Maintains a warm, professional tone

Return only the email content (subject line and body)."""


def build_automation_post_prompt(
    event: MeetingEvent, transcript_text: str, automation: Automation
) -> str:
    example = f"Example Output:\n{automation.example}\n" if automation.example else ""
    return f"""Based on the following meeting transcript, generate a social media post using the provided automation instructions.

Meeting Title: {event.title}
Meeting Date: {_meeting_date(event)}

Automation Instructions:
{automation.description}

{example}
Transcript:
{transcript_text}

Generate a social media post that follows the automation instructions. Return only the post text."""


def default_post_system_prompt(platform: SocialPlatform) -> str:
    return (
        f"You are a professional social media content creator. Generate engaging "
        f"{platform.value} posts based on meeting insights."
    )


def build_default_post_prompt(
    event: MeetingEvent, transcript_text: str, platform: SocialPlatform
) -> str:
    attendees = f"Attendees: {', '.join(event.attendees)}\n" if event.attendees else ""
    return f"""Based on the following meeting transcript, generate a {platform.value} post that matches the {PLATFORM_VIBES[platform]}.

Meeting Title: {event.title}
Meeting Date: {_meeting_date(event)}
{attendees}
Transcript:
{transcript_text}

Generate a {platform.value} post that:
{PLATFORM_GUIDELINES[platform]}

Return only the post text, no additional formatting."""

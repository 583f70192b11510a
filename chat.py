"""Canned help-chat replies, matched by keyword in rule order."""

RULES = [
    ("create", ("create", "capsule", "how to"),
     "To create a time capsule:\n"
     "1. Click 'Create Capsule' from your dashboard\n"
     "2. Choose a theme and set an unlock date\n"
     "3. Add photos, videos, documents or messages\n"
     "4. Invite collaborators if you like (optional)\n"
     "5. Seal your capsule!"),
    ("pricing", ("price", "cost", "free", "payment"),
     "Time Capsule is free to use: create as many capsules as you want and upgrade later if you need more."),
    ("security", ("security", "secure", "safe", "encrypt"),
     "Capsules are private to you and the collaborators you invite. "
     "Only capsules you mark for emergency access can be opened without signing in."),
    ("sharing", ("share", "collaborat", "invite", "family"),
     "To collaborate on a capsule:\n"
     "1. Open the capsule\n"
     "2. Click 'Add Collaborators'\n"
     "3. Pick a person and a permission (view, edit or admin)\n"
     "They will get a notification with the invitation."),
    ("unlock", ("unlock", "open", "access", "when"),
     "Capsules unlock on the date you chose. Open pages check every 30 seconds, "
     "and every 5 seconds in the last few minutes, so you will see the moment it opens."),
    ("emergency", ("emergency", "qr", "medical", "health"),
     "Emergency QR access lets first responders read a capsule without an account:\n"
     "1. Enable emergency access on the capsule\n"
     "2. Generate its QR code\n"
     "3. Print it or keep it on your phone"),
    ("storage", ("storage", "limit", "size", "upload"),
     "You can attach photos, videos, documents and audio files to any capsule."),
    ("timeline", ("timeline", "view", "organize"),
     "The Timeline shows all your capsules ordered by unlock date, with days left for the locked ones."),
    ("help", ("help", "support", "contact", "problem"),
     "I'm here to help! You can also reach the support team at support@timecapsule.com. "
     "What specific issue can I help you with?"),
    ("greeting", ("hello", "hi", "hey"),
     "Hello! I can answer questions about creating capsules, sharing, unlock dates, emergency access and more."),
    ("thanks", ("thank",),
     "You're welcome! Is there anything else I can help you with today?"),
    ("goodbye", ("bye", "goodbye"),
     "Goodbye! Feel free to reach out anytime."),
]


def reply_to(message: str) -> tuple[str, str]:
    """Return (topic, reply) for a user message."""
    lowered = message.lower()
    for topic, keywords, reply in RULES:
        if any(keyword in lowered for keyword in keywords):
            return topic, reply
    return "fallback", (
        f"I understand you're asking about: \"{message}\"\n\n"
        "I can help with creating and managing capsules, sharing and collaboration, "
        "unlock dates and emergency access. Could you rephrase your question?"
    )

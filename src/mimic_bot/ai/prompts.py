"""Prompt templates used around the owner's base system prompt."""

from __future__ import annotations

REACTION_INSTRUCTIONS = """\
If a message only needs a short acknowledgment (a thank-you, an "ok", a \
sticker-like reply), you may react instead of writing text. To react, answer \
with exactly one line of the form [REACT:<emoji>] and nothing else. Allowed \
emoji: {allowed}."""

PARTY_NAME_LINE = "You are talking with: {name}"

SUMMARY_TURN = "Short summary of the earlier conversation:\n{summary}"

CUSTOM_CONTEXT_TURN = "Note from the account owner about this person:\n{context}"

FACTS_HEADER = "Known facts about this person:"

OWNER_REQUEST_TURN = (
    "IMPORTANT: the next message comes from the account owner, who is addressing "
    "you directly. Answer them as their personal assistant and help with the request."
)

SUMMARY_PROMPT = """\
You summarize chat histories. Write a concise summary of the dialogue that \
keeps the key facts, topics and context. Use the language of the dialogue. \
Keep it under 300 words."""

SUMMARY_REQUEST = "Summarize the following messages:\n\n{transcript}"

FACTS_PROMPT = """\
You analyse conversations and extract durable facts about the user.

Categories:
- birthday: birthdays (their own or of people close to them)
- interests: interests and hobbies
- plans: plans for the future
- work: work or studies
- relationships: family and friends
- other: anything else worth remembering

Return only NEW facts. If there are none, return an empty array.

Answer with a strict JSON array of objects with the fields "category" and \
"fact", for example:
[{"category": "birthday", "fact": "Birthday is on May 15"}]

Reply with valid JSON only, no extra text."""

FACTS_REQUEST = "Analyse the conversation and extract facts:\n\n{transcript}"

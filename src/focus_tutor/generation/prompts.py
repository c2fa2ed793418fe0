"""Prompt templates for the content generator."""

FEEDBACK_MARKER = "[FEEDBACK_ACTION]"

NEUTRAL_INTERESTS = "Travel, Culture"
NEUTRAL_GOALS = "General conversation skills"

SAFETY_PROMPT = """\
Analyze the user text below for strict safety violations against this list of \
prohibited topics:

- Politics, government, regimes (insults, criticism, sensitive political discussion)
- Religion (insults, blasphemy, controversial religious debate)
- Racism, hate speech, discrimination
- Dating, romance, flirting, sexual content
- Drugs, alcohol, illegal acts
- Violence, terrorism, extremism
- Profanity, insults, bad words
- Gambling

A simple greeting or a language-learning question is SAFE.

Respond ONLY with a JSON object:
{"is_safe": <true|false>, "reason": "<short explanation if unsafe, empty if safe>"}
"""

ONBOARDING_PROMPT = """\
You are a friendly language onboarding assistant. Your goal is to gather the \
remaining information needed to build a learning plan.

KNOWN INFO:
User's interests: {interests} (do not ask about these again, but acknowledge them warmly).

MISSING INFO (ask about these one at a time):
1. Motivation or specific goals (work, travel, exams...).
2. Time availability (minutes per day).

Once you have both, your reply MUST end with the question: \
"Do you have anything else to add?"

Keep it conversational, short and encouraging. Do not generate the plan yet.
"""

PERSONA_PROMPT = """\
Create a language teacher persona for a student learning {target_language}.
Student interests: {interests}.
Student goal: {goals}.
Learning style: {learning_style}.

Keep the persona neutral, professional and respectful. Ignore any prohibited \
topic in the interests or goal and default to travel and culture.

Respond ONLY with a JSON object:
{{"name": "<string>", "age": <integer>, "personality": "<string>", \
"teaching_style": "<string>", "catchphrase": "<string>", \
"avatar_seed": <random integer between 1 and 1000>}}
"""

ROADMAP_PROMPT = """\
Create a 4-week learning roadmap for {target_language} (level: {level}).
Focus: {goals}.
Interests: {interests}.

Ignore any prohibited topic in the interests or focus and concentrate on \
general language skills.

Respond ONLY with a JSON object:
{{"weeks": [{{"week": <1-4>, "theme": "<string>", "focus": "<string>", \
"activity": "<string>", "completed": false}}, ...exactly 4 entries]}}
"""

GAME_PROMPT = """\
Generate a single multiple-choice vocabulary question.
Target language: {target_language}
User's native language: {native_language}
User level: {level}
{subject}

{language_rule}

Respond ONLY with a JSON object:
{{"question": "<string>", "options": ["<4 strings>"], "correct_answer": "<one of the options>", \
"explanation": "<in {native_language}>", "concept": "<{concept_rule}>", \
"category": "<broad topic name in {native_language}, e.g. Greetings, Food, Travel; never the answer word>"}}
"""

TUTOR_PROMPT = """\
You are {name}, a {age}-year-old language teacher.
Personality: {personality}.
Teaching style: {teaching_style}.
Target language: {target_language}.
Student's native language: {native_language}.
Student's level: {level}.
{context}
Interact with the student. Be helpful, correct mistakes gently and stay in character.

LEVEL ADJUSTMENT:
{level_rule}

If the student writes in their native language, help them translate to {target_language}.

FEEDBACK CHECK:
Occasionally (not every time) ask the student how they are finding the lessons so far. \
If the student replies with any feedback (bugs, compliments, complaints), thank them \
warmly and append the exact tag {marker} to the end of your reply.
"""


def is_beginner(level: str) -> bool:
    return "A1" in level or "A2" in level or "beginner" in level.lower()


def build_game_prompt(
    target_language: str,
    native_language: str,
    level: str,
    theme: str,
    prior_concept: str | None = None,
) -> str:
    beginner = is_beginner(level)
    if prior_concept:
        subject = f'Concept to practice: "{prior_concept}"'
        concept_rule = f"repeat {prior_concept}"
        language_rule = (
            f"The user is a beginner ({level}): write the question in {native_language} "
            f"asking for the meaning of the {target_language} word, or how to say it. "
            f"Options are in {target_language}."
            if beginner
            else f"Write the question in {target_language} but keep it simple."
        )
    else:
        subject = f'Topic: "{theme}"'
        concept_rule = "the specific word being tested"
        language_rule = (
            f"The user is a beginner ({level}): write the question in {native_language} "
            f"(e.g. \"How do you say 'Apple' in {target_language}?\"). "
            f"Options are in {target_language}."
            if beginner
            else f"Write the question in {target_language}."
        )
    return GAME_PROMPT.format(
        target_language=target_language,
        native_language=native_language,
        level=level,
        subject=subject,
        language_rule=language_rule,
        concept_rule=concept_rule,
    )


def build_tutor_prompt(
    persona,
    target_language: str,
    native_language: str,
    level: str,
    last_topic: str | None = None,
) -> str:
    if is_beginner(level):
        level_rule = (
            f"The student is a beginner ({level}). Explain things in {native_language}. "
            f"Set up exercises in {native_language} but ask for specific phrases in "
            f"{target_language}, e.g. \"How would you say 'Good morning' in {target_language}?\". "
            f"Only use {target_language} for the practice words and sentences."
        )
    else:
        level_rule = (
            f"Use mostly {target_language}, but explain complex errors in {native_language}."
        )
    context = (
        f'CONTEXT FROM LAST SESSION: the student last discussed "{last_topic}". '
        "Pick up from there if relevant.\n"
        if last_topic
        else ""
    )
    return TUTOR_PROMPT.format(
        name=persona.name,
        age=persona.age,
        personality=persona.personality,
        teaching_style=persona.teaching_style,
        target_language=target_language,
        native_language=native_language,
        level=level,
        context=context,
        level_rule=level_rule,
        marker=FEEDBACK_MARKER,
    )


def has_feedback_marker(text: str) -> bool:
    return FEEDBACK_MARKER in text


def strip_feedback_marker(text: str) -> str:
    """Reply text as shown to the learner, without the call-to-action tag."""
    return text.replace(FEEDBACK_MARKER, "").strip()

from types import SimpleNamespace

import pytest

import campus_bot.assistant as assistant_mod
from campus_bot.assistant import answer, fun_fact, AI_BUSY_MESSAGE, AI_ERROR_MESSAGE
from campus_bot.intents import FIND_PERSON, FIND_MENU_OR_SHOP, GENERAL_QUESTION
from campus_bot.llm import LLMBusyError, LLMError
from campus_bot.slots import ConversationContext

STUDENTS = [
    {"type": "Student", "name": "Riya Sharma", "entryNumber": "2023CS10001"},
    {"type": "Student", "name": "Riya Gupta", "entryNumber": "2023EE10422", "hostel": "Jwalamukhi", "branch": "EE"},
]


@pytest.fixture
def fake_db(monkeypatch):
    """Replace the fetch strategies and record how they were called."""
    calls = []
    general, student = object(), object()

    monkeypatch.setattr(assistant_mod, "pick_pair", lambda: SimpleNamespace(name="A"))
    monkeypatch.setattr(assistant_mod, "pair_pools", lambda pair: (general, student))

    def find_students(pool, year, name):
        calls.append(("students", pool is student, year, name))
        return [s for s in STUDENTS if name.lower() in s["name"].lower()]

    def find_club_members(pool, year, club):
        calls.append(("club", pool is student, year, club))
        return []

    async def fetch_food(pool):
        calls.append(("food", pool is general))
        return [{"type": "Menu", "hostel": "Jwalamukhi Hostel", "dinner": "Paneer"}]

    def fetch_knowledge(pool, limit):
        calls.append(("knowledge", pool is general, limit))
        return [{"type": "Knowledge", "topic": "Library", "hours": "8-24"}]

    monkeypatch.setattr(assistant_mod, "find_students", find_students)
    monkeypatch.setattr(assistant_mod, "find_club_members", find_club_members)
    monkeypatch.setattr(assistant_mod, "fetch_food", fetch_food)
    monkeypatch.setattr(assistant_mod, "fetch_knowledge", fetch_knowledge)
    return calls


def test_student_lookup_asks_for_year_then_answers(asyncio_event_loop, fake_model, fake_db):
    model = fake_model(
        intent='{"intent": "find_person", "name": "Riya Sharma"}',
        answers=["Riya Sharma is in Computer Science 💻"],
    )

    reply, ctx = asyncio_event_loop.run_until_complete(
        answer("Riya Sharma", mode="student")
    )
    assert reply.kind == "clarify"
    assert reply.intent == FIND_PERSON
    assert reply.message.startswith("Which entry year")
    assert len(reply.actions) == 3
    assert all(a.query.startswith("Riya Sharma ") for a in reply.actions)
    assert ctx.pending_field == "year"
    assert fake_db == []  # nothing fetched yet

    reply, ctx = asyncio_event_loop.run_until_complete(
        answer("2023", mode="student", ctx=ctx)
    )
    assert reply.kind == "message"
    assert reply.message == "Riya Sharma is in Computer Science 💻"
    assert fake_db == [("students", True, "2023", "Riya Sharma")]
    # the second turn replays the stored intent instead of classifying again
    assert sum(1 for _p, json_mode in model.prompts if json_mode) == 1
    assert 'Find Riya Sharma, 2023' in model.answer_prompts[-1]
    assert not ctx.awaiting_input


def test_year_reply_without_a_year_asks_again(asyncio_event_loop, fake_model, fake_db):
    fake_model()
    pending = ConversationContext(
        current_intent=FIND_PERSON,
        pending_field="year",
        collected={"name": "Riya"},
    )
    reply, ctx = asyncio_event_loop.run_until_complete(answer("no idea", ctx=pending))
    assert reply.kind == "clarify"
    assert ctx.awaiting_input
    assert fake_db == []


def test_switching_to_food_mode_leaves_the_year_question(asyncio_event_loop, fake_model, fake_db):
    fake_model(intent='{"intent": "find_menu_or_shop", "hostel_name": "Jwalamukhi Hostel"}')
    pending = ConversationContext(
        current_intent=FIND_PERSON,
        pending_field="year",
        collected={"name": "Riya"},
        mode="student",
    )
    reply, ctx = asyncio_event_loop.run_until_complete(
        answer("what's for dinner at jwala?", mode="food", ctx=pending)
    )
    assert reply.kind == "message"
    assert reply.intent == FIND_MENU_OR_SHOP
    assert not ctx.awaiting_input
    assert fake_db == [("food", True)]


def test_second_reply_without_a_year_is_routed_normally(asyncio_event_loop, fake_model, fake_db):
    fake_model()
    ctx = ConversationContext(current_intent=FIND_PERSON, pending_field="year", collected={"name": "Riya"})
    reply, ctx = asyncio_event_loop.run_until_complete(answer("no idea", ctx=ctx))
    assert reply.kind == "clarify"

    reply, ctx = asyncio_event_loop.run_until_complete(answer("hostel curfew?", ctx=ctx))
    assert reply.kind == "message"
    assert reply.intent == GENERAL_QUESTION
    assert not ctx.awaiting_input
    assert fake_db[0][0] == "knowledge"


def test_year_in_first_query_skips_the_question(asyncio_event_loop, fake_model, fake_db):
    fake_model(intent='{"intent": "find_person", "name": "Gupta", "year": 2023}')
    reply, _ = asyncio_event_loop.run_until_complete(answer("Gupta 2023", mode="student"))
    assert reply.kind == "message"
    assert fake_db == [("students", True, "2023", "Gupta")]


def test_no_match_tells_the_model(asyncio_event_loop, fake_model, fake_db):
    model = fake_model(intent='{"intent": "find_person", "name": "Zed", "year": "2024"}')
    asyncio_event_loop.run_until_complete(answer("Zed 2024", mode="student"))
    assert 'No student found with name "Zed" in the 2024 directory.' in model.answer_prompts[-1]


def test_food_mode_uses_menus_and_today(asyncio_event_loop, fake_model, fake_db):
    model = fake_model(intent='{"intent": "general_question"}')
    reply, _ = asyncio_event_loop.run_until_complete(
        answer("what's for dinner at jwala", mode="food")
    )
    assert reply.intent == FIND_MENU_OR_SHOP
    assert fake_db == [("food", True)]
    prompt = model.answer_prompts[-1]
    assert "**Current Day:**" in prompt
    assert "Paneer" in prompt


def test_general_question_with_reply_context(asyncio_event_loop, fake_model, fake_db):
    model = fake_model()
    reply, _ = asyncio_event_loop.run_until_complete(
        answer("and on Sundays?", mode="general", reply_to="The library opens at 8.")
    )
    assert reply.intent == GENERAL_QUESTION
    assert fake_db[0][0] == "knowledge"
    prompt = model.answer_prompts[-1]
    assert prompt.startswith("The user is directly replying to your previous message.")
    assert '**Replied-To Message:** "The library opens at 8."' in prompt
    assert prompt.endswith("use Markdown and emojis.")


def test_clarify_candidates_can_be_selected(asyncio_event_loop, fake_model, fake_db):
    model = fake_model(
        intent='{"intent": "find_person", "name": "Riya", "year": "2023"}',
        answers=[
            'CLARIFY:[{"name": "Riya Sharma", "entryNumber": "2023CS10001"},'
            ' {"name": "Riya Gupta", "entryNumber": "2023EE10422"}]',
            "Riya Gupta studies Electrical Engineering ⚡",
        ],
    )
    reply, ctx = asyncio_event_loop.run_until_complete(answer("Riya 2023", mode="student"))
    assert reply.kind == "clarify"
    assert [a.entry for a in reply.actions] == ["2023CS10001", "2023EE10422"]
    assert len(ctx.candidates) == 2

    reply, ctx = asyncio_event_loop.run_until_complete(
        answer("", mode="student", ctx=ctx, selected_entry="2023EE10422")
    )
    assert reply.message == "Riya Gupta studies Electrical Engineering ⚡"
    selected_prompt = model.answer_prompts[-1]
    assert "2023EE10422" in selected_prompt
    # the stored record is the fetched document, not just the echoed name
    assert "Jwalamukhi" in selected_prompt
    assert ctx.candidates == []
    # only the first turn hit the directory
    assert len(fake_db) == 1


def test_open_url_command_comes_back_as_action(asyncio_event_loop, fake_model, fake_db):
    fake_model(answers=["COMMAND::OPEN_URL::https://library.iitd.ac.in"])
    reply, _ = asyncio_event_loop.run_until_complete(answer("open the library site"))
    assert reply.kind == "command"
    assert reply.actions[0].url == "https://library.iitd.ac.in"


@pytest.mark.parametrize(
    "error,message",
    [(LLMBusyError("429"), AI_BUSY_MESSAGE), (LLMError("500"), AI_ERROR_MESSAGE)],
)
def test_model_failures_become_friendly_messages(asyncio_event_loop, fake_model, fake_db, error, message):
    fake_model(answers=[error])
    reply, _ = asyncio_event_loop.run_until_complete(answer("hostel curfew?"))
    assert reply.kind == "message"
    assert reply.message == message


def test_fun_fact(asyncio_event_loop, fake_model):
    model = fake_model(answers=["IIT Delhi was established in 1961! 🎓"])
    reply = asyncio_event_loop.run_until_complete(fun_fact())
    assert reply.message.startswith("IIT Delhi")
    assert "fun, interesting, or little-known fact" in model.answer_prompts[-1]

import random
from datetime import timedelta

import pytest

from examprep.db.sqlite import get_attempt, get_question, get_quiz, save_question
from examprep.errors import (
    AttemptNotActive,
    AttemptNotFound,
    DuplicateQuestion,
    EmptyQuiz,
    QuestionNotInAttempt,
    RecordNotFound,
)
from examprep.models.attempt import AttemptStatus
from examprep.models.quiz import QuizCreate
from examprep.services.quiz_engine import (
    abandon_attempt,
    assemble_quiz,
    complete_attempt,
    expire_idle_attempts,
    get_attempt_results,
    revise_quiz,
    start_attempt,
    submit_answer,
)


@pytest.fixture
def four_questions(add_question):
    async def _make():
        return [
            await add_question("multiple-choice"),
            await add_question("true-false"),
            await add_question("short-answer"),
            await add_question("fill-blank"),
        ]

    return _make


@pytest.mark.asyncio
async def test_start_creates_one_slot_per_question(db, clock, four_questions, add_quiz):
    questions = await four_questions()
    quiz = await add_quiz(questions)

    started = await start_attempt(db, quiz.id, user_id="sam", clock=clock)
    attempt = await get_attempt(db, started.attempt_id)

    assert len(attempt.answers) == len(quiz.questions)
    assert [a.question_id for a in attempt.answers] == [q.id for q in questions]
    assert all(a.selected_answer is None and a.points_earned == 0 for a in attempt.answers)
    assert attempt.score.total_points == 4
    assert attempt.status is AttemptStatus.IN_PROGRESS
    assert attempt.started_at == clock.now
    assert attempt.user_id == "sam"


@pytest.mark.asyncio
async def test_start_view_carries_no_answer_key(db, clock, four_questions, add_quiz):
    quiz = await add_quiz(await four_questions())
    started = await start_attempt(db, quiz.id, clock=clock)

    payload = started.model_dump_json()
    assert '"correct_answer"' not in payload
    assert '"is_correct"' not in payload
    assert '"explanation"' not in payload
    assert "Mitochondria" not in payload
    mc = started.quiz.questions[0]
    assert [o.text for o in mc.options] == ["Oxygen", "Carbon dioxide", "Nitrogen"]


@pytest.mark.asyncio
async def test_randomized_view_keeps_canonical_order(db, clock, four_questions, add_quiz):
    questions = await four_questions()
    quiz = await add_quiz(questions, randomize_questions=True, randomize_options=True)

    started = await start_attempt(db, quiz.id, clock=clock, rng=random.Random(3))

    assert sorted(q.id for q in started.quiz.questions) == sorted(q.id for q in questions)
    stored = await get_quiz(db, quiz.id)
    assert [r.question_id for r in stored.questions] == [q.id for q in questions]
    attempt = await get_attempt(db, started.attempt_id)
    assert [a.question_id for a in attempt.answers] == [q.id for q in questions]


@pytest.mark.asyncio
async def test_start_empty_quiz_rejected(db, clock, add_quiz):
    quiz = await add_quiz([])
    with pytest.raises(EmptyQuiz):
        await start_attempt(db, quiz.id, clock=clock)


@pytest.mark.asyncio
async def test_start_unknown_quiz_rejected(db, clock):
    with pytest.raises(RecordNotFound):
        await start_attempt(db, "missing", clock=clock)


@pytest.mark.asyncio
async def test_assemble_quiz_rejects_unknown_questions(db, clock, add_question):
    question = await add_question()
    body = QuizCreate(title="Mock", subject="biology", question_ids=[question.id, "nope"])
    with pytest.raises(RecordNotFound):
        await assemble_quiz(db, body, clock)


@pytest.mark.asyncio
async def test_repeated_question_rejected(db, clock, add_question, add_quiz):
    question = await add_question()
    with pytest.raises(DuplicateQuestion):
        await add_quiz([question, question])

    quiz = await add_quiz([question])
    body = QuizCreate(title="Mock", subject="biology", question_ids=[question.id] * 2)
    with pytest.raises(DuplicateQuestion):
        await revise_quiz(db, quiz.id, body, clock)

    # the stored quiz still has a single slot, so a correct answer scores 100
    attempt_id = (await start_attempt(db, quiz.id, clock=clock)).attempt_id
    await submit_answer(db, attempt_id, question.id, "Mitochondria", clock=clock)
    result = await complete_attempt(db, attempt_id, clock=clock)
    assert len(result.answers) == 1
    assert result.score.percentage == 100


@pytest.mark.asyncio
async def test_answer_grading(db, clock, four_questions, add_quiz):
    mc, tf, short, blank = await four_questions()
    quiz = await add_quiz([mc, tf, short, blank])
    attempt_id = (await start_attempt(db, quiz.id, clock=clock)).attempt_id

    assert (await submit_answer(db, attempt_id, mc.id, "Carbon dioxide", clock=clock)).is_correct
    assert not (await submit_answer(db, attempt_id, mc.id, "carbon dioxide", clock=clock)).is_correct
    result = await submit_answer(db, attempt_id, short.id, "MITOCHONDRIA", 12, clock=clock)
    assert result.is_correct
    assert result.points_earned == 1
    assert not (await submit_answer(db, attempt_id, blank.id, "212", clock=clock)).is_correct


@pytest.mark.asyncio
async def test_reanswer_replaces_slot(db, clock, four_questions, add_quiz):
    questions = await four_questions()
    quiz = await add_quiz(questions)
    attempt_id = (await start_attempt(db, quiz.id, clock=clock)).attempt_id
    short = questions[2]

    await submit_answer(db, attempt_id, short.id, "Mitochondria", 10, clock=clock)
    await submit_answer(db, attempt_id, short.id, "Ribosome", 4, clock=clock)

    attempt = await get_attempt(db, attempt_id)
    slots = [a for a in attempt.answers if a.question_id == short.id]
    assert len(slots) == 1
    assert slots[0].selected_answer == "Ribosome"
    assert not slots[0].is_correct
    assert slots[0].time_spent == 4
    assert len(attempt.answers) == 4


@pytest.mark.asyncio
async def test_answer_errors(db, clock, four_questions, add_question, add_quiz):
    questions = await four_questions()
    outsider = await add_question("essay")
    quiz = await add_quiz(questions)
    attempt_id = (await start_attempt(db, quiz.id, clock=clock)).attempt_id

    with pytest.raises(AttemptNotFound):
        await submit_answer(db, "missing", questions[0].id, "x", clock=clock)
    with pytest.raises(QuestionNotInAttempt):
        await submit_answer(db, attempt_id, outsider.id, "x", clock=clock)

    await complete_attempt(db, attempt_id, clock=clock)
    with pytest.raises(AttemptNotActive):
        await submit_answer(db, attempt_id, questions[0].id, "Carbon dioxide", clock=clock)


@pytest.mark.asyncio
async def test_complete_all_correct_scores_100(db, clock, four_questions, add_quiz):
    mc, tf, short, blank = await four_questions()
    quiz = await add_quiz([mc, tf, short, blank])
    attempt_id = (await start_attempt(db, quiz.id, clock=clock)).attempt_id

    await submit_answer(db, attempt_id, mc.id, "Carbon dioxide", 5, clock=clock)
    await submit_answer(db, attempt_id, tf.id, "true", 3, clock=clock)
    await submit_answer(db, attempt_id, short.id, "mitochondria", 8, clock=clock)
    await submit_answer(db, attempt_id, blank.id, "100", 4, clock=clock)
    clock.advance(minutes=2)
    result = await complete_attempt(db, attempt_id, clock=clock)

    assert result.score.percentage == 100
    assert result.score.earned_points == 4
    assert result.time_spent == 20
    assert result.passed

    attempt = await get_attempt(db, attempt_id)
    assert attempt.status is AttemptStatus.COMPLETED
    assert attempt.completed_at == clock.now


@pytest.mark.asyncio
@pytest.mark.parametrize("correct, passed", [(7, True), (6, False)])
async def test_pass_fail_boundary(db, clock, add_question, add_quiz, correct, passed):
    questions = [await add_question("fill-blank") for _ in range(10)]
    quiz = await add_quiz(questions, passing_score=70)
    attempt_id = (await start_attempt(db, quiz.id, clock=clock)).attempt_id
    for question in questions[:correct]:
        await submit_answer(db, attempt_id, question.id, "100", clock=clock)

    result = await complete_attempt(db, attempt_id, clock=clock)
    assert result.score.percentage == correct * 10
    assert result.passed is passed


@pytest.mark.asyncio
async def test_percentage_69_fails_at_70(db, clock, add_question, add_quiz):
    questions = [await add_question("fill-blank") for _ in range(13)]
    quiz = await add_quiz(questions, passing_score=70)
    attempt_id = (await start_attempt(db, quiz.id, clock=clock)).attempt_id
    for question in questions[:9]:
        await submit_answer(db, attempt_id, question.id, "100", clock=clock)

    result = await complete_attempt(db, attempt_id, clock=clock)
    assert result.score.percentage == 69
    assert not result.passed


@pytest.mark.asyncio
async def test_complete_twice_counts_once(db, clock, four_questions, add_quiz):
    quiz = await add_quiz(await four_questions())
    attempt_id = (await start_attempt(db, quiz.id, clock=clock)).attempt_id

    await complete_attempt(db, attempt_id, clock=clock)
    with pytest.raises(AttemptNotActive):
        await complete_attempt(db, attempt_id, clock=clock)

    assert (await get_quiz(db, quiz.id)).total_attempts == 1


@pytest.mark.asyncio
async def test_quiz_running_average(db, clock, add_question, add_quiz):
    questions = [await add_question("fill-blank") for _ in range(2)]
    quiz = await add_quiz(questions)

    first = (await start_attempt(db, quiz.id, clock=clock)).attempt_id
    for question in questions:
        await submit_answer(db, first, question.id, "100", clock=clock)
    await complete_attempt(db, first, clock=clock)

    second = (await start_attempt(db, quiz.id, clock=clock)).attempt_id
    await submit_answer(db, second, questions[0].id, "100", clock=clock)
    await complete_attempt(db, second, clock=clock)

    third = (await start_attempt(db, quiz.id, clock=clock)).attempt_id
    await complete_attempt(db, third, clock=clock)

    stored = await get_quiz(db, quiz.id)
    assert stored.total_attempts == 3
    assert stored.average_score == pytest.approx(50.0)  # (100 + 50 + 0) / 3


@pytest.mark.asyncio
async def test_question_statistics_only_for_answered(db, clock, add_question, add_quiz):
    answered, skipped = await add_question(), await add_question()
    quiz = await add_quiz([answered, skipped])

    first = (await start_attempt(db, quiz.id, clock=clock)).attempt_id
    await submit_answer(db, first, answered.id, "Mitochondria", 10, clock=clock)
    await complete_attempt(db, first, clock=clock)

    second = (await start_attempt(db, quiz.id, clock=clock)).attempt_id
    await submit_answer(db, second, answered.id, "Nucleus", 20, clock=clock)
    await complete_attempt(db, second, clock=clock)

    stats = await get_question(db, answered.id)
    assert stats.performance.total_attempts == 2
    assert stats.performance.correct_answers == 1
    assert stats.performance.average_time == pytest.approx(15.0)
    assert stats.usage_count == 2

    untouched = await get_question(db, skipped.id)
    assert untouched.performance.total_attempts == 0
    assert untouched.usage_count == 0


@pytest.mark.asyncio
async def test_grading_uses_key_from_start(db, clock, add_question, add_quiz):
    question = await add_question()
    quiz = await add_quiz([question])
    attempt_id = (await start_attempt(db, quiz.id, clock=clock)).attempt_id

    edited = question.model_copy(update={"correct_answer": "Golgi"})
    assert await save_question(db, edited, clock())
    assert (await get_question(db, question.id)).correct_answer == "Golgi"

    assert (await submit_answer(db, attempt_id, question.id, "Mitochondria", clock=clock)).is_correct


@pytest.mark.asyncio
async def test_revise_quiz_keeps_running_attempts(db, clock, add_question, add_quiz):
    first, second = await add_question(), await add_question("fill-blank")
    quiz = await add_quiz([first], passing_score=0)
    attempt_id = (await start_attempt(db, quiz.id, clock=clock)).attempt_id

    body = QuizCreate(
        title="Revised",
        subject="biology",
        question_ids=[first.id, second.id],
        settings={"passing_score": 100},
    )
    revised = await revise_quiz(db, quiz.id, body, clock)
    assert revised.title == "Revised"
    assert [ref.question_id for ref in revised.questions] == [first.id, second.id]

    # the running attempt keeps one slot and the old passing score
    result = await complete_attempt(db, attempt_id, clock=clock)
    assert result.score.total_points == 1
    assert result.passed is True

    with pytest.raises(RecordNotFound):
        await revise_quiz(db, "missing", body, clock)
    with pytest.raises(RecordNotFound):
        await revise_quiz(db, quiz.id, body.model_copy(update={"question_ids": ["nope"]}), clock)


@pytest.mark.asyncio
async def test_abandon(db, clock, four_questions, add_quiz):
    questions = await four_questions()
    quiz = await add_quiz(questions)
    attempt_id = (await start_attempt(db, quiz.id, clock=clock)).attempt_id
    await submit_answer(db, attempt_id, questions[0].id, "Carbon dioxide", 9, clock=clock)

    results = await abandon_attempt(db, attempt_id, clock=clock)
    assert results.status is AttemptStatus.ABANDONED
    assert results.passed is None
    assert results.time_spent == 9

    with pytest.raises(AttemptNotActive):
        await complete_attempt(db, attempt_id, clock=clock)
    with pytest.raises(AttemptNotActive):
        await abandon_attempt(db, attempt_id, clock=clock)
    assert (await get_quiz(db, quiz.id)).total_attempts == 0


@pytest.mark.asyncio
async def test_expire_idle_attempts(db, clock, four_questions, add_quiz):
    questions = await four_questions()
    quiz = await add_quiz(questions)
    idle = (await start_attempt(db, quiz.id, clock=clock)).attempt_id
    busy = (await start_attempt(db, quiz.id, clock=clock)).attempt_id

    clock.advance(hours=3)
    await submit_answer(db, busy, questions[0].id, "Oxygen", clock=clock)
    clock.advance(hours=2)

    assert await expire_idle_attempts(db, timedelta(hours=4), clock=clock) == 1
    assert (await get_attempt(db, idle)).status is AttemptStatus.ABANDONED
    assert (await get_attempt(db, busy)).status is AttemptStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_results_reveal_key_only_when_finished(db, clock, four_questions, add_quiz):
    quiz = await add_quiz(await four_questions())
    attempt_id = (await start_attempt(db, quiz.id, clock=clock)).attempt_id

    during = await get_attempt_results(db, attempt_id)
    assert during.answer_key is None
    assert during.passed is None

    await complete_attempt(db, attempt_id, clock=clock)
    after = await get_attempt_results(db, attempt_id)
    assert after.answer_key is not None
    assert after.answer_key[0].correct_option == "Carbon dioxide"
    assert after.passed is False


@pytest.mark.asyncio
async def test_results_hide_key_when_quiz_disallows(db, clock, four_questions, add_quiz):
    quiz = await add_quiz(await four_questions(), show_correct_answers=False)
    attempt_id = (await start_attempt(db, quiz.id, clock=clock)).attempt_id
    await complete_attempt(db, attempt_id, clock=clock)

    assert (await get_attempt_results(db, attempt_id)).answer_key is None

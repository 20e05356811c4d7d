import argparse
import random
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.append(str(ROOT))

from assessments.db import init_db
from assessments.logging_config import setup_logging
from assessments.notifications import get_notifications_for_coaching
from assessments.service import AssessmentService


SEED_TITLE_PREFIX = "[SEED]"


def _question_defs(count):
    defs = []
    for qn in range(count):
        if qn % 3 == 0:
            defs.append({
                "type": "NAT",
                "prompt": f"Seed NAT {qn+1}: 2 + {qn}",
                "correctAnswer": {"kind": "NAT", "value": 2 + qn, "tolerance": 0.5},
                "marks": 2,
            })
        elif qn % 3 == 1:
            defs.append({
                "type": "MSQ",
                "prompt": f"Seed MSQ {qn+1}",
                "options": [{"id": o, "text": f"Option {o}"} for o in "ABCD"],
                "correctAnswer": {"kind": "MSQ", "optionIds": ["A", "C"]},
                "marks": 2,
            })
        else:
            defs.append({
                "type": "MCQ",
                "prompt": f"Seed MCQ {qn+1}",
                "options": [{"id": o, "text": f"Option {o}"} for o in "ABCD"],
                "correctAnswer": {"kind": "MCQ", "optionId": "B"},
                "marks": 1,
            })
    return defs


def _answer_for(question, correct):
    key = question["correct_answer"]
    if key["kind"] == "NAT":
        return {"kind": "NAT", "value": key["value"] if correct else key["value"] + 10}
    if correct:
        return key
    if key["kind"] == "MSQ":
        return {"kind": "MSQ", "optionIds": ["A"]}
    return {"kind": "MCQ", "optionId": "D"}


def main():
    parser = argparse.ArgumentParser(description="Seed a demo assessment with simulated students.")
    parser.add_argument("--coaching-id", type=int, default=1)
    parser.add_argument("--batch-id", type=int, default=1)
    parser.add_argument("--teacher-id", type=int, default=1)
    parser.add_argument("--students", type=int, default=12)
    parser.add_argument("--questions", type=int, default=6)
    parser.add_argument("--negative-marking", type=float, default=0.25)
    parser.add_argument("--seed", type=int, default=42)
    args = parser.parse_args()

    setup_logging()
    init_db()
    random.seed(args.seed)
    service = AssessmentService()

    created = service.create_assessment(args.coaching_id, args.batch_id, args.teacher_id, {
        "title": f"{SEED_TITLE_PREFIX} Demo Test",
        "type": "TEST",
        "durationMinutes": 30,
        "negativeMarking": args.negative_marking,
        "questions": _question_defs(args.questions),
    })

    for idx in range(args.students):
        # three bands of students: weak, average, strong
        success_rate = (0.35, 0.6, 0.85)[idx % 3]
        started = service.start_attempt(created["id"], 10_000 + idx)
        for question in created["questions"]:
            roll = random.random()
            if roll > 0.9:
                continue
            service.save_answer(
                started.attempt_id, question["id"], _answer_for(question, roll < success_rate)
            )
        service.submit_attempt(started.attempt_id)

    print(f"Seeded assessment {created['id']} ({created['title']}), total marks {created['total_marks']}")
    for rank, attempt in enumerate(service.get_attempts_by_assessment(created["id"]), start=1):
        print(
            f"{rank:>3}. user {attempt['user_id']}: {attempt['total_score']}/{attempt['max_score']} "
            f"({attempt['percentage']}%)"
        )
    for note in get_notifications_for_coaching(service.session_factory, args.coaching_id)[:1]:
        print(f"Notification: {note.title}")


if __name__ == "__main__":
    main()

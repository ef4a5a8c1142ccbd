"""
api/sample_questions.py — Supabase 없이 실행할 때 쓰는 TOEIC 샘플 문제 (Part 1~7)

듣기 파트(1~4)는 음성 없이 스크립트 요약을 prompt에 넣었다.
Part 3, 4, 6, 7은 passage_id로 지문 묶음을 이룬다.
"""

from toeic_exam.models.question_model import Question

_ABCD = ["A", "B", "C", "D"]
_ABC = ["A", "B", "C"]


SAMPLE_QUESTIONS = [
    # ── Part 1: 사진 묘사 ──────────────────────────────────────────────────
    Question(
        id="s-p1-1",
        part=1,
        question_number=1,
        prompt="[Photo] A man is standing at a counter.",
        choices=_ABCD,
        choice_texts={
            "A": "He's typing on a keyboard.",
            "B": "He's handing a document to a clerk.",
            "C": "He's opening a window.",
            "D": "He's stacking some boxes.",
        },
        correct_choice="B",
        explanation="The man is passing a document across the counter.",
    ),
    Question(
        id="s-p1-2",
        part=1,
        question_number=2,
        prompt="[Photo] Several bicycles are parked near a building.",
        choices=_ABCD,
        choice_texts={
            "A": "Some bicycles have been lined up against a wall.",
            "B": "A cyclist is repairing a tire.",
            "C": "People are crossing the street.",
            "D": "A bicycle is being loaded onto a truck.",
        },
        correct_choice="A",
        explanation="The bicycles are parked in a row by the wall.",
    ),
    # ── Part 2: 질의 응답 (3지선다) ─────────────────────────────────────────
    Question(
        id="s-p2-1",
        part=2,
        question_number=7,
        prompt="When will the quarterly report be ready?",
        choices=_ABC,
        choice_texts={
            "A": "In the conference room.",
            "B": "By Friday afternoon.",
            "C": "Yes, it was very informative.",
        },
        correct_choice="B",
        explanation="A 'when' question is answered with a time.",
    ),
    Question(
        id="s-p2-2",
        part=2,
        question_number=8,
        prompt="Would you like me to book a taxi for you?",
        choices=_ABC,
        choice_texts={
            "A": "Thanks, but I'll take the train.",
            "B": "It's a best-selling book.",
            "C": "About twenty minutes ago.",
        },
        correct_choice="A",
        explanation="The speaker politely declines the offer.",
    ),
    # ── Part 3: 짧은 대화 ──────────────────────────────────────────────────
    Question(
        id="s-p3-1",
        part=3,
        question_number=32,
        passage_id="s-p3-conv1",
        prompt="What are the speakers mainly discussing?",
        choices=_ABCD,
        choice_texts={
            "A": "A delayed shipment",
            "B": "A job interview",
            "C": "An office relocation",
            "D": "A product launch",
        },
        correct_choice="A",
        explanation="The woman says the supplier's delivery has not arrived.",
    ),
    Question(
        id="s-p3-2",
        part=3,
        question_number=33,
        passage_id="s-p3-conv1",
        prompt="What does the man offer to do?",
        choices=_ABCD,
        choice_texts={
            "A": "Cancel the order",
            "B": "Call the supplier",
            "C": "Visit the warehouse",
            "D": "Update a schedule",
        },
        correct_choice="B",
        explanation="The man says he will phone the supplier right away.",
    ),
    Question(
        id="s-p3-3",
        part=3,
        question_number=34,
        passage_id="s-p3-conv1",
        prompt="What will the woman probably do next?",
        choices=_ABCD,
        choice_texts={
            "A": "Email a client",
            "B": "Print an invoice",
            "C": "Attend a meeting",
            "D": "Check inventory",
        },
        correct_choice="A",
        explanation="She plans to let the client know about the delay.",
    ),
    # ── Part 4: 짧은 담화 ──────────────────────────────────────────────────
    Question(
        id="s-p4-1",
        part=4,
        question_number=71,
        passage_id="s-p4-talk1",
        prompt="Where most likely is the announcement being made?",
        choices=_ABCD,
        choice_texts={
            "A": "At an airport",
            "B": "At a museum",
            "C": "At a department store",
            "D": "At a train station",
        },
        correct_choice="D",
        explanation="The speaker mentions platform numbers and departures.",
    ),
    Question(
        id="s-p4-2",
        part=4,
        question_number=72,
        passage_id="s-p4-talk1",
        prompt="What are listeners asked to do?",
        choices=_ABCD,
        choice_texts={
            "A": "Show their tickets",
            "B": "Move to a different platform",
            "C": "Keep their luggage with them",
            "D": "Purchase refreshments",
        },
        correct_choice="B",
        explanation="The departure platform has changed.",
    ),
    # ── Part 5: 단문 빈칸 채우기 ────────────────────────────────────────────
    Question(
        id="s-p5-1",
        part=5,
        question_number=101,
        prompt="The new software will allow employees to work more ------- .",
        choices=_ABCD,
        choice_texts={
            "A": "efficient",
            "B": "efficiency",
            "C": "efficiently",
            "D": "efficiencies",
        },
        correct_choice="C",
        explanation="An adverb is needed to modify the verb 'work'.",
    ),
    Question(
        id="s-p5-2",
        part=5,
        question_number=102,
        prompt="Ms. Tanaka has been promoted ------- regional sales manager.",
        choices=_ABCD,
        choice_texts={"A": "to", "B": "at", "C": "on", "D": "by"},
        correct_choice="A",
        explanation="'promoted to' a position.",
    ),
    Question(
        id="s-p5-3",
        part=5,
        question_number=103,
        prompt="All visitors must sign in at the front desk ------- entering the laboratory.",
        choices=_ABCD,
        choice_texts={"A": "before", "B": "during", "C": "since", "D": "until"},
        correct_choice="A",
        explanation="Signing in happens prior to entering.",
    ),
    Question(
        id="s-p5-4",
        part=5,
        question_number=104,
        prompt="The budget proposal was ------- approved by the board of directors.",
        choices=_ABCD,
        choice_texts={
            "A": "unanimity",
            "B": "unanimously",
            "C": "unanimous",
            "D": "unanimousness",
        },
        correct_choice="B",
        explanation="An adverb modifies the passive verb 'was approved'.",
    ),
    # ── Part 6: 장문 빈칸 채우기 ────────────────────────────────────────────
    Question(
        id="s-p6-1",
        part=6,
        question_number=131,
        passage_id="s-p6-memo1",
        prompt=(
            "To all staff: The parking garage will be closed for repairs next week. "
            "Employees ------- (131) to use the lot on Elm Street."
        ),
        choices=_ABCD,
        choice_texts={
            "A": "encourage",
            "B": "are encouraged",
            "C": "encouraging",
            "D": "to encourage",
        },
        correct_choice="B",
        explanation="The passive voice fits the subject 'Employees'.",
    ),
    Question(
        id="s-p6-2",
        part=6,
        question_number=132,
        passage_id="s-p6-memo1",
        prompt="Shuttle buses will run every fifteen minutes ------- (132) the two locations.",
        choices=_ABCD,
        choice_texts={"A": "between", "B": "among", "C": "across", "D": "along"},
        correct_choice="A",
        explanation="'between' is used with two locations.",
    ),
    # ── Part 7: 독해 ───────────────────────────────────────────────────────
    Question(
        id="s-p7-1",
        part=7,
        question_number=147,
        passage_id="s-p7-email1",
        prompt=(
            "Dear Mr. Alvarez, thank you for your order of 200 notebooks. "
            "Because of high demand, your order will ship on May 12 instead of May 5. "
            "We have applied a 10% discount to your invoice.\n\n"
            "Why was the e-mail sent?"
        ),
        choices=_ABCD,
        choice_texts={
            "A": "To confirm a payment",
            "B": "To announce a new product",
            "C": "To report a shipping delay",
            "D": "To request a catalog",
        },
        correct_choice="C",
        explanation="The order will ship a week later than planned.",
    ),
    Question(
        id="s-p7-2",
        part=7,
        question_number=148,
        passage_id="s-p7-email1",
        prompt="What is Mr. Alvarez offered?",
        choices=_ABCD,
        choice_texts={
            "A": "Free delivery",
            "B": "A reduced price",
            "C": "Extra notebooks",
            "D": "A full refund",
        },
        correct_choice="B",
        explanation="A 10% discount was applied to the invoice.",
    ),
]

"""Multiplication question generation, encouragement messages and hints."""
import random
from dataclasses import dataclass
from typing import Dict, Optional, Sequence
from tablequest.constants import OPERAND_MIN, OPERAND_MAX, OPERAND_SWAP_PROBABILITY, MIN_CHOSEN_NUMBERS
from tablequest.services.difficulty import DifficultyTier, topic_pool

SUCCESS_MESSAGES = (
    "Excellent! 🎉",
    "Well done! 🌟",
    "Perfect! 👏",
    "Super! 🎊",
    "Brilliant! ✨",
    "Awesome! 🚀",
    "Keep it up! 💪",
    "You're a champion! 🏆",
)

ENCOURAGEMENT_MESSAGES = (
    "Almost! Try again! 💡",
    "No worries, keep going! 🌈",
    "You'll get there! 💪",
    "Just a little more effort! ⭐",
    "Don't give up! 🎯",
    "Check the hint! 🔍",
)

_default_rng = random.Random()


@dataclass(frozen=True)
class Question:
    """One multiplication question, operands in display order."""
    operand_a: int
    operand_b: int
    product: int

    def to_dict(self) -> Dict:
        return {"operand_a": self.operand_a, "operand_b": self.operand_b}


def generate_question(
    topic: Optional[int] = None,
    tier: DifficultyTier = DifficultyTier.BEGINNER,
    chosen_numbers: Optional[Sequence[int]] = None,
    rng: random.Random = None
) -> Question:
    """
    Generate a multiplication question.

    Modes, checked in order:
    - chosen_numbers with at least two values: both operands drawn from them
      (distinct positions when more than two values are available)
    - topic: the table number times 1-10
    - otherwise: a table from the tier's pool times 1-10

    The operands are then swapped half of the time for display variety.

    Args:
        topic: Multiplication table to practise, or None
        tier: Effective difficulty tier (used only in pure difficulty mode)
        chosen_numbers: Values picked by the learner, or None
        rng: Random source (defaults to the module-level generator)

    Returns:
        Question with product == operand_a * operand_b
    """
    rng = rng or _default_rng

    if chosen_numbers and len(chosen_numbers) >= MIN_CHOSEN_NUMBERS:
        numbers = list(chosen_numbers)
        first = rng.randrange(len(numbers))
        second = rng.randrange(len(numbers))
        if len(numbers) > 2:
            while second == first:
                second = rng.randrange(len(numbers))
        operand_a, operand_b = numbers[first], numbers[second]
    elif topic is not None:
        operand_a = topic
        operand_b = rng.randint(OPERAND_MIN, OPERAND_MAX)
    else:
        operand_a = rng.choice(topic_pool(tier))
        operand_b = rng.randint(OPERAND_MIN, OPERAND_MAX)

    if rng.random() < OPERAND_SWAP_PROBABILITY:
        operand_a, operand_b = operand_b, operand_a

    return Question(operand_a=operand_a, operand_b=operand_b, product=operand_a * operand_b)


def pick_message(correct: bool, rng: random.Random = None) -> str:
    """Pick a random encouragement line for a correct or incorrect answer."""
    rng = rng or _default_rng
    return rng.choice(SUCCESS_MESSAGES if correct else ENCOURAGEMENT_MESSAGES)


def generate_hint(operand_a: int, operand_b: int) -> str:
    """
    Build a hint for a missed question.

    Small factors become repeated addition. Otherwise the times-5 and
    times-9 tricks are offered when the second displayed operand is 5 or 9,
    falling back to a "groups of" phrasing.

    Args:
        operand_a: First operand as displayed
        operand_b: Second operand as displayed

    Returns:
        Hint text
    """
    product = operand_a * operand_b
    low = min(operand_a, operand_b)
    high = max(operand_a, operand_b)

    if low <= 3:
        additions = " + ".join([str(high)] * low)
        return f"💡 {low} times {high} is like {additions} = {product}"

    # Only the displayed second operand is inspected, so a swapped 5 or 9 falls through
    if operand_b == 5:
        return f"💡 To multiply by 5, halve and add a zero! {operand_a} ÷ 2 × 10 = {product}"

    if operand_b == 9:
        return f"💡 To multiply by 9, multiply by 10 and take the number away! {operand_a} × 10 - {operand_a} = {product}"

    return f"💡 Think it through... it's {low} groups of {high}!"

from ..models import Difficulty

DIFFICULTY_GUIDANCE = {
    Difficulty.EASY: "Provide a very basic hint that points to the general approach. Be very simple and direct.",
    Difficulty.MEDIUM: "Provide a moderate hint that guides the user toward the solution without revealing it completely.",
    Difficulty.HARD: "Provide a subtle hint that challenges the user to think deeper about the problem.",
}


def classify_difficulty(description: str) -> Difficulty:
    """Case-sensitive: only the literal words "Easy" / "Hard" count."""
    description = description or ""
    if "Easy" in description:
        return Difficulty.EASY
    if "Hard" in description:
        return Difficulty.HARD
    return Difficulty.MEDIUM

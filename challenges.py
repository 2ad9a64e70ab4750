import copy
import random
from typing import Any, Dict, List

CHALLENGES: List[Dict[str, Any]] = [
    {
        "title": "Sum of numbers",
        "description": "Write a function that returns the sum of the numbers from 1 to n.",
        "examples": [
            {"input": "5", "output": "15"},
            {"input": "10", "output": "55"},
        ],
        "testCases": [
            {"input": "10", "expectedOutput": "55"},
            {"input": "100", "expectedOutput": "5050"},
        ],
    },
    {
        "title": "Reverse a string",
        "description": "Write a function that returns its input string reversed.",
        "examples": [
            {"input": "abc", "output": "cba"},
            {"input": "racecar", "output": "racecar"},
        ],
        "testCases": [
            {"input": "hello", "expectedOutput": "olleh"},
            {"input": "", "expectedOutput": ""},
        ],
    },
    {
        "title": "Count vowels",
        "description": "Write a function that counts the vowels (a, e, i, o, u) in a string.",
        "examples": [
            {"input": "banana", "output": "3"},
            {"input": "rhythm", "output": "0"},
        ],
        "testCases": [
            {"input": "education", "expectedOutput": "5"},
            {"input": "xyz", "expectedOutput": "0"},
        ],
    },
]


def get_random_challenge() -> Dict[str, Any]:
    # Copied so rooms never share a mutable blob
    return copy.deepcopy(random.choice(CHALLENGES))

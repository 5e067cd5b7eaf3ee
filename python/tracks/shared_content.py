"""
Shared content used by track policies.
"""

from __future__ import annotations


SUPPORTED_LANGUAGES: tuple[str, ...] = (
    "python",
    "javascript",
    "typescript",
    "java",
    "cpp",
    "go",
)


LANGUAGE_TEMPLATES: dict[str, str] = {
    "python": (
        "def solution(nums: list[int]) -> int:\n"
        "    # Write your solution here\n"
        "    pass\n"
    ),
    "javascript": (
        "function solution(nums) {\n"
        "    // Write your solution here\n"
        "\n"
        "}\n"
    ),
    "typescript": (
        "function solution(nums: number[]): number {\n"
        "    // Write your solution here\n"
        "\n"
        "}\n"
    ),
    "java": (
        "class Solution {\n"
        "    public int solution(int[] nums) {\n"
        "        // Write your solution here\n"
        "        return 0;\n"
        "    }\n"
        "}\n"
    ),
    "cpp": (
        "class Solution {\n"
        "public:\n"
        "    int solution(vector<int>& nums) {\n"
        "        // Write your solution here\n"
        "        return 0;\n"
        "    }\n"
        "};\n"
    ),
    "go": (
        "func solution(nums []int) int {\n"
        "    // Write your solution here\n"
        "    return 0\n"
        "}\n"
    ),
}

from holoframe.pipeline.prompts import (
    BASE_HOLOGRAM_PROMPT_1SIDE,
    BASE_HOLOGRAM_PROMPT_4SIDES,
    create_hologram_prompt,
    get_base_prompt,
)


class TestHologramPrompt:
    def test_defaults_to_single_side(self):
        assert create_hologram_prompt() == BASE_HOLOGRAM_PROMPT_1SIDE
        assert get_base_prompt("unknown") == BASE_HOLOGRAM_PROMPT_1SIDE

    def test_single_side_rotates_four_sides_does_not(self):
        assert "one full 360-degree turn" in BASE_HOLOGRAM_PROMPT_1SIDE
        assert "Do not rotate the subject" in BASE_HOLOGRAM_PROMPT_4SIDES
        assert "360-degree" not in BASE_HOLOGRAM_PROMPT_4SIDES

    def test_shared_constraints(self):
        for prompt in (BASE_HOLOGRAM_PROMPT_1SIDE, BASE_HOLOGRAM_PROMPT_4SIDES):
            assert "pure black (#000000)" in prompt
            assert "seamless loop" in prompt
            assert prompt.endswith("No shadows, no reflections, no particles, no added elements.")

    def test_appends_trimmed_requirements(self):
        prompt = create_hologram_prompt("  make it wave  ", "4sides")
        assert prompt == BASE_HOLOGRAM_PROMPT_4SIDES + "\n\nAdditional requirements: make it wave"

    def test_blank_requirements_are_ignored(self):
        assert create_hologram_prompt("   ", "1side") == BASE_HOLOGRAM_PROMPT_1SIDE
        assert create_hologram_prompt(None, "4sides") == BASE_HOLOGRAM_PROMPT_4SIDES

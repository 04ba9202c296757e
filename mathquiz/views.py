"""
Discord UI components for presenting answer options.
"""
from typing import Awaitable, Callable, Sequence

import discord


OPTION_LABELS = "ABCDEFGH"

# Discord rejects button labels longer than this
MAX_LABEL_LENGTH = 80

AnswerCallback = Callable[[discord.Interaction, int], Awaitable[None]]


def option_label(index: int) -> str:
    return OPTION_LABELS[index] if index < len(OPTION_LABELS) else str(index + 1)


class AnswerView(discord.ui.View):
    """One button per answer option; clicks are forwarded with the option index."""

    def __init__(self, options: Sequence[str], on_answer: AnswerCallback, timeout: float = None):
        super().__init__(timeout=timeout)
        self.on_answer = on_answer

        for index, option in enumerate(options):
            label = f"{option_label(index)}) {option}"
            button = discord.ui.Button(
                label=label[:MAX_LABEL_LENGTH],
                style=discord.ButtonStyle.primary,
                row=index // 2,
            )
            button.callback = self._make_callback(index)
            self.add_item(button)

    def _make_callback(self, index: int):
        async def callback(interaction: discord.Interaction):
            await self.on_answer(interaction, index)
        return callback

    def disable_all(self) -> None:
        """Grey out every button once the question is resolved."""
        for item in self.children:
            item.disabled = True

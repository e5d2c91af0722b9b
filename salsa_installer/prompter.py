from __future__ import annotations

import getpass
import logging
from typing import TYPE_CHECKING, Dict, Mapping, Optional, Protocol, Set

from .errors import UserAborted, ValidationFailed

if TYPE_CHECKING:
    from .validate import FieldKind

logger = logging.getLogger(__name__)

ACCEPT_TOKEN = "yes"

PROMPTS = {
    "hostname": "Enter hostname: ",
    "timezone": "Enter timezone (e.g., America/New_York): ",
    "username": "Enter new user name: ",
    "password": "Enter password for the new user (will also be root password): ",
    "device": "Enter the device to install on (e.g., sda): ",
    "swap_size": "Enter swap size in GiB (0 for no swap): ",
}


class Prompter(Protocol):
    def ask(self, kind: "FieldKind") -> str:
        ...

    def ask_secret(self, kind: "FieldKind", *, confirm: bool = False) -> str:
        ...

    def confirm(self, summary: str) -> bool:
        ...

    def report(self, kind: "FieldKind", reason: str) -> None:
        ...

    def show(self, text: str) -> None:
        ...


class TerminalPrompter:
    """Interactive prompts on the controlling terminal.

    defaults (e.g. from a config file) are offered in brackets; an empty
    answer takes the default. Ctrl-C / Ctrl-D abort.
    """

    def __init__(
        self,
        *,
        defaults: Optional[Mapping[str, str]] = None,
        accept_token: str = ACCEPT_TOKEN,
    ) -> None:
        self.defaults = dict(defaults or {})
        self.accept_token = accept_token

    def _read(self, prompt: str, *, secret: bool = False) -> str:
        try:
            if secret:
                return getpass.getpass(prompt)
            return input(prompt)
        except (EOFError, KeyboardInterrupt) as e:
            print()
            raise UserAborted("Input aborted by user") from e

    def ask(self, kind: "FieldKind") -> str:
        default = self.defaults.get(kind.value)
        prompt = PROMPTS[kind.value]
        if default:
            prompt = f"{prompt.rstrip(': ')} [{default}]: "
        answer = self._read(prompt)
        return answer if answer else (default or "")

    def ask_secret(self, kind: "FieldKind", *, confirm: bool = False) -> str:
        prompt = "Re-enter password to confirm: " if confirm else PROMPTS[kind.value]
        return self._read(prompt, secret=True)

    def confirm(self, summary: str) -> bool:
        print(summary)
        answer = self._read(f"Type '{self.accept_token}' to erase the device and proceed: ")
        return answer == self.accept_token

    def report(self, kind: "FieldKind", reason: str) -> None:
        print(f"Invalid {kind.value}: {reason}. Please try again.")

    def show(self, text: str) -> None:
        print(text)


class AnswersPrompter:
    """Non-interactive prompter fed from CLI flags or a config file.

    Each field can be answered once; a second request for the same field
    means the supplied value was rejected, which cannot be corrected
    without a human, so ValidationFailed is raised.
    """

    def __init__(self, answers: Mapping[str, str], *, assume_yes: bool = False) -> None:
        self.answers: Dict[str, str] = {k: str(v) for k, v in answers.items() if v is not None}
        self.assume_yes = assume_yes
        self._asked: Set[str] = set()
        self._last_reason: Dict[str, str] = {}

    def _answer(self, kind: "FieldKind") -> str:
        name = kind.value
        if name in self._asked:
            raise ValidationFailed(name, self._last_reason.get(name, "value rejected"))
        self._asked.add(name)
        if name not in self.answers:
            raise ValidationFailed(name, "no value supplied")
        return self.answers[name]

    def ask(self, kind: "FieldKind") -> str:
        return self._answer(kind)

    def ask_secret(self, kind: "FieldKind", *, confirm: bool = False) -> str:
        if confirm:
            return self.answers.get(kind.value, "")
        return self._answer(kind)

    def confirm(self, summary: str) -> bool:
        for ln in summary.splitlines():
            logger.info("%s", ln)
        return self.assume_yes

    def report(self, kind: "FieldKind", reason: str) -> None:
        self._last_reason[kind.value] = reason
        logger.error("Invalid %s: %s", kind.value, reason)

    def show(self, text: str) -> None:
        for ln in text.splitlines():
            logger.info("%s", ln)

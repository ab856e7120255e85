"""Parsing of transcribed voice commands.

Turns a phrase like "trabalhando no projeto Concepta fazendo deploy"
into a spoken project name ("concepta") and a note ("fazendo deploy").
Project names are resolved later by CategoryEngine.find_project().
"""

from typing import Iterable

from timetrack.core.models import VoiceCommand

# Checked in order; the first prefix found wins.
PROJECT_PREFIXES = (
    "trabalhando no projeto ",
    "trabalhando em ",
    "trabalhando no ",
    "projeto ",
    "no projeto ",
    "em ",
)


def parse_command(transcription: str, known_projects: Iterable[str] = ()) -> VoiceCommand:
    """Split *transcription* into a project name and an optional note.

    Without a recognised prefix, the text is searched for one of the
    *known_projects* names and whatever remains becomes the note.
    """
    text = transcription.lower()

    for prefix in PROJECT_PREFIXES:
        index = text.find(prefix)
        if index == -1:
            continue
        words = text[index + len(prefix):].split()
        if words:
            note = " ".join(words[1:]) or None
            return VoiceCommand(project_name=words[0], note=note)

    for name in known_projects:
        name = name.lower()
        if name and name in text:
            note = " ".join(text.replace(name, "").split()) or None
            return VoiceCommand(project_name=name, note=note)

    return VoiceCommand()

import re
from dataclasses import dataclass
from typing import Pattern, Tuple

from notebook_bridge.services.prompt_enhancer import LANGUAGES, detect_language

CONTAINMENT_INSTRUCTIONS = {
    "strict": {
        "en": """

---
SOURCE FIDELITY INSTRUCTIONS:
This response comes from NotebookLM, which ONLY uses the uploaded documents.
DO NOT supplement, enhance, or add information from your training data.
DO NOT make assumptions or inferences beyond what is stated above.
If the user needs additional information not covered by the sources, say so explicitly rather than filling gaps with external knowledge.
Your role is to RELAY this information faithfully, not to augment it.
---""",
        "it": """

---
ISTRUZIONI DI FEDELTÀ ALLE FONTI:
Questa risposta proviene da NotebookLM, che usa SOLO i documenti caricati.
NON integrare, arricchire o aggiungere informazioni dai tuoi dati di addestramento.
NON fare assunzioni o inferenze oltre quanto dichiarato sopra.
Se l'utente ha bisogno di informazioni aggiuntive non coperte dalle fonti, dichiaralo esplicitamente invece di colmare le lacune con conoscenze esterne.
Il tuo ruolo è TRASMETTERE queste informazioni fedelmente, non aumentarle.
---""",
    },
    "balanced": {
        "en": """

---
Note: This response is grounded on the uploaded documents. If you need to add context, clearly distinguish between source-based information and your own additions.
---""",
        "it": """

---
Nota: Questa risposta è basata sui documenti caricati. Se aggiungi contesto, distingui chiaramente tra informazioni dalle fonti e tue aggiunte.
---""",
    },
}

# Answers are longer than questions, so detection asks for more evidence.
ANSWER_PATTERNS: Tuple[Pattern, ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\b(il|la|lo|gli|le|un|una|uno)\b",
        r"\b(che|cosa|come|quando|dove|perché|quale)\b",
        r"\b(sono|sei|è|siamo|siete)\b",
        r"\b(questo|questa|questi|queste)\b",
        r"\b(nel|nella|nei|nelle|sul|sulla)\b",
        r"zione\b",
        r"mente\b",
    )
)


@dataclass
class ResponseWrapper:
    """Appends source-fidelity instructions for the agent reading an answer."""

    enabled: bool = True
    mode: str = "strict"
    # "en", "it" or "auto"
    language: str = "auto"

    def wrap(self, answer: str) -> str:
        if not self.enabled:
            return answer
        language = self.language
        if language not in LANGUAGES:
            language = detect_language(answer, ANSWER_PATTERNS, threshold=3)
        instructions = CONTAINMENT_INSTRUCTIONS.get(self.mode, CONTAINMENT_INSTRUCTIONS["strict"])
        return f"{answer}{instructions[language]}"

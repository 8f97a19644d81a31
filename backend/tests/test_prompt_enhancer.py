import pytest

from notebook_bridge.services.prompt_enhancer import PromptEnhancer, classify_question, detect_language
from notebook_bridge.services.response_wrapper import ResponseWrapper


@pytest.mark.parametrize(
    "question,expected",
    [
        ("Compare the two reports", "comparison"),
        ("How does X differ from Y?", "comparison"),
        ("List the main risks", "list"),
        ("What are the deadlines?", "list"),
        ("Analyze the budget section", "analysis"),
        ("Explain the onboarding flow", "explanation"),
        ("Why did revenue drop?", "explanation"),
        ("Quote the termination clause", "extraction"),
    ],
)
def test_classify_question(question, expected):
    assert classify_question(question) == expected


def test_strict_prompt_forbids_outside_knowledge():
    prompt = PromptEnhancer(mode="strict").enhance("  Quote the termination clause  ")

    assert "TASK: Quote the termination clause\n" in prompt
    assert "[NOT FOUND IN DOCUMENTS]" in prompt
    assert prompt.endswith("BEGIN STRUCTURED RESPONSE")


def test_balanced_prompt_uses_balanced_constraints():
    prompt = PromptEnhancer(mode="balanced").enhance("List the owners")

    assert "primarily on uploaded documents" in prompt
    assert "[NOT FOUND IN DOCUMENTS]" not in prompt.split("REQUIRED OUTPUT FORMAT")[0]


def test_disabled_enhancer_passes_question_through():
    assert PromptEnhancer(enabled=False).enhance("raw?") == "raw?"


def test_wrapper_appends_fidelity_note():
    strict = ResponseWrapper(mode="strict").wrap("Answer.")
    assert strict.startswith("Answer.\n\n---\nSOURCE FIDELITY INSTRUCTIONS:")
    assert ResponseWrapper(enabled=False).wrap("Answer.") == "Answer."


@pytest.mark.parametrize(
    "text,expected",
    [
        ("Quali sono le scadenze del progetto?", "it"),
        ("Spiega come funziona la registrazione", "it"),
        ("What are the project deadlines?", "en"),
        ("Quote the termination clause", "en"),
    ],
)
def test_detect_language(text, expected):
    assert detect_language(text) == expected


@pytest.mark.parametrize(
    "question,expected",
    [
        ("Confronta le due relazioni", "comparison"),
        ("Quali sono i rischi principali?", "list"),
        ("Analizza la sezione del budget", "analysis"),
        ("Perché sono calati i ricavi?", "explanation"),
    ],
)
def test_classify_italian_question(question, expected):
    assert classify_question(question, "it") == expected


def test_italian_question_gets_italian_template():
    prompt = PromptEnhancer(mode="strict").enhance("Quali sono le scadenze del progetto?")

    assert prompt.startswith("ISTRUZIONI PER LA RISPOSTA")
    assert "COMPITO: Quali sono le scadenze del progetto?" in prompt
    assert "[NON PRESENTE NEI DOCUMENTI]" in prompt
    assert "Struttura la risposta come lista:" in prompt
    assert prompt.endswith("INIZIO RISPOSTA STRUTTURATA")


def test_forced_language_overrides_detection():
    prompt = PromptEnhancer(language="en").enhance("Quali sono le scadenze del progetto?")

    assert prompt.startswith("RESPONSE INSTRUCTIONS")


def test_wrapper_matches_the_answer_language():
    italian = ResponseWrapper(mode="balanced").wrap(
        "Il contratto è valido nel territorio nazionale e la registrazione avviene solamente online."
    )
    english = ResponseWrapper(mode="balanced").wrap("The contract is valid nationwide.")
    forced = ResponseWrapper(mode="strict", language="it").wrap("Answer.")

    assert "Nota: Questa risposta è basata sui documenti caricati." in italian
    assert "Note: This response is grounded on the uploaded documents." in english
    assert "ISTRUZIONI DI FEDELTÀ ALLE FONTI:" in forced

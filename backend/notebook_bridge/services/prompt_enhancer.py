"""
Prompt enhancer.

Wraps a plain question in a structured prompt that asks NotebookLM to stay
within the uploaded sources, cite them, and say so when something is missing.
The output layout depends on a keyword classification of the question.
Templates exist in English and Italian; "auto" picks one from the question.
"""
import re
from dataclasses import dataclass
from typing import Dict, Pattern, Sequence, Tuple

LANGUAGES = ("en", "it")

QUESTION_TYPE_KEYWORDS: Dict[str, Tuple[Tuple[str, Tuple[str, ...]], ...]] = {
    "en": (
        ("comparison", ("compare", "differ", " vs", "versus")),
        ("list", ("list", "what are", "identify", "enumerate")),
        ("analysis", ("analyze", "analyse", "examine", "evaluate")),
        ("explanation", ("explain", "why", "how")),
    ),
    "it": (
        ("comparison", ("confronta", "differenz")),
        ("list", ("elenca", "quali sono", "identifica")),
        ("analysis", ("analizza", "esamina", "valuta")),
        ("explanation", ("spiega", "perché", " come ")),
    ),
}

ITALIAN_PATTERNS: Tuple[Pattern, ...] = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"\b(il|la|lo|gli|le|un|una|uno)\b",
        r"\b(che|cosa|come|quando|dove|perché|quale)\b",
        r"\b(sono|sei|è|siamo|siete)\b",
        r"\b(ho|hai|ha|abbiamo|avete|hanno)\b",
        r"\b(questo|questa|questi|queste)\b",
        r"\b(nel|nella|nei|nelle|sul|sulla)\b",
        r"\b(può|posso|puoi|potrebbe)\b",
        r"\b(analizza|elenca|confronta|spiega|identifica)\b",
        r"zione\b",
        r"mente\b",
    )
)

MODE_CONSTRAINTS = {
    "en": {
        "strict": (
            "- Use ONLY information explicitly present in uploaded documents\n"
            "- DO NOT add external knowledge, interpretations or inferences\n"
            '- If information is not present, state: "[NOT FOUND IN DOCUMENTS]"'
        ),
        "balanced": (
            "- Base your response primarily on uploaded documents\n"
            "- If synthesizing from multiple sources, clearly indicate which ones\n"
            "- Distinguish between documented data and your elaborations"
        ),
    },
    "it": {
        "strict": (
            "- Usa ESCLUSIVAMENTE informazioni esplicite nei documenti caricati\n"
            "- NON aggiungere conoscenze esterne, interpretazioni o inferenze\n"
            "- Se un'informazione non è presente, dichiara: \"[NON PRESENTE NEI DOCUMENTI]\""
        ),
        "balanced": (
            "- Basa la risposta principalmente sui documenti caricati\n"
            "- Se sintetizzi da più fonti, indica chiaramente quali\n"
            "- Distingui tra dati documentali e tue elaborazioni"
        ),
    },
}

FORMAT_INSTRUCTIONS = {
    "en": {
        "comparison": """Structure response as follows:

1. ELEMENTS COMPARED
   - Element A: [name/description]
   - Element B: [name/description]

2. SIMILARITIES
   For each similarity:
   - Aspect: [description]
   - Evidence A: "quote" [Source]
   - Evidence B: "quote" [Source]

3. DIFFERENCES
   For each difference:
   - Aspect: [description]
   - Position A: "quote" [Source]
   - Position B: "quote" [Source]

4. SYNTHESIS
   - Conclusions based only on evidence above""",
        "list": """Structure response as list:

For each element found:
- ELEMENT: [name/title]
- DESCRIPTION: [details from document]
- QUOTE: "relevant text" [Source: document]

If count requested, provide total number.""",
        "analysis": """Structure analysis as follows:

1. ANALYSIS SUBJECT
   - What is being analyzed
   - Scope of documents examined

2. OBSERVATIONS
   For each observation:
   - Point: [description]
   - Evidence: "quote" [Source]

3. PATTERNS/RECURRING THEMES (if applicable)
   - Pattern identified
   - Occurrences with quotes

4. CONCLUSIONS
   - Only conclusions supported by evidence above""",
        "explanation": """Structure explanation as follows:

1. CONCEPT/QUESTION
   - Question restatement

2. ANSWER FROM DOCUMENTS
   - Explanation based on sources
   - Supporting quotes

3. EXAMPLES (if present in documents)
   - Example: [description]
   - Source: [document]

4. RELATED INFORMATION
   - Other relevant elements found""",
        "extraction": """Structure extraction as follows:

EXTRACTED DATA:
For each relevant data point:
- Data: [information]
- Quote: "original text"
- Source: [document/section]

If multiple data points, organize by category or document.""",
    },
    "it": {
        "comparison": """Struttura la risposta come segue:

1. ELEMENTI CONFRONTATI
   - Elemento A: [nome/descrizione]
   - Elemento B: [nome/descrizione]

2. SIMILITUDINI
   Per ogni similitudine:
   - Aspetto: [descrizione]
   - Evidenza A: "citazione" [Fonte]
   - Evidenza B: "citazione" [Fonte]

3. DIFFERENZE
   Per ogni differenza:
   - Aspetto: [descrizione]
   - Posizione A: "citazione" [Fonte]
   - Posizione B: "citazione" [Fonte]

4. SINTESI
   - Conclusioni basate solo sulle evidenze sopra""",
        "list": """Struttura la risposta come lista:

Per ogni elemento trovato:
- ELEMENTO: [nome/titolo]
- DESCRIZIONE: [dettagli dal documento]
- CITAZIONE: "testo rilevante" [Fonte: documento]

Se richiesto un conteggio, fornisci il numero totale.""",
        "analysis": """Struttura l'analisi come segue:

1. OGGETTO DELL'ANALISI
   - Cosa viene analizzato
   - Perimetro dei documenti esaminati

2. OSSERVAZIONI
   Per ogni osservazione:
   - Punto: [descrizione]
   - Evidenza: "citazione" [Fonte]

3. PATTERN/TEMI RICORRENTI (se applicabile)
   - Pattern identificato
   - Occorrenze con citazioni

4. CONCLUSIONI
   - Solo conclusioni supportate dalle evidenze sopra""",
        "explanation": """Struttura la spiegazione come segue:

1. CONCETTO/DOMANDA
   - Riformulazione della domanda

2. RISPOSTA DAI DOCUMENTI
   - Spiegazione basata sulle fonti
   - Citazioni a supporto

3. ESEMPI (se presenti nei documenti)
   - Esempio: [descrizione]
   - Fonte: [documento]

4. INFORMAZIONI CORRELATE
   - Altri elementi rilevanti trovati""",
        "extraction": """Struttura l'estrazione come segue:

DATI ESTRATTI:
Per ogni dato rilevante:
- Dato: [informazione]
- Citazione: "testo originale"
- Fonte: [documento/sezione]

Se i dati sono multipli, organizzali per categoria o documento.""",
    },
}

PROMPT_TEMPLATES = {
    "en": """RESPONSE INSTRUCTIONS

TASK: {question}

OPERATIONAL CONSTRAINTS
{constraints}

REQUIRED OUTPUT FORMAT
{format_instructions}

CITATIONS
- Every claim MUST include source (document name or section)
- Use direct quotes where possible
- Citation format: "quoted text" [Source: document name]

HANDLING MISSING INFORMATION
- If requested information is not in documents, state it explicitly
- Do not invent, infer, or complete with external knowledge
- An incomplete but accurate response is preferable to a complete but unreliable one

BEGIN STRUCTURED RESPONSE""",
    "it": """ISTRUZIONI PER LA RISPOSTA

COMPITO: {question}

VINCOLI OPERATIVI
{constraints}

FORMATO OUTPUT RICHIESTO
{format_instructions}

CITAZIONI
- Ogni affermazione DEVE includere la fonte (nome documento o sezione)
- Usa citazioni dirette tra virgolette dove possibile
- Formato citazione: "testo citato" [Fonte: nome documento]

GESTIONE INFORMAZIONI MANCANTI
- Se l'informazione richiesta non è nei documenti, dichiaralo esplicitamente
- Non inventare, non inferire, non completare con conoscenze esterne
- È preferibile una risposta incompleta ma accurata a una completa ma inaffidabile

INIZIO RISPOSTA STRUTTURATA""",
}


def detect_language(text: str, patterns: Sequence[Pattern] = ITALIAN_PATTERNS, threshold: int = 2) -> str:
    """Return "it" when at least threshold of the Italian patterns match, else "en"."""
    score = sum(1 for pattern in patterns if pattern.search(text))
    return "it" if score >= threshold else "en"


def resolve_language(language: str, text: str) -> str:
    if language in LANGUAGES:
        return language
    return detect_language(text)


def classify_question(question: str, language: str = "en") -> str:
    """Return comparison, list, analysis, explanation or extraction."""
    lowered = f" {question.lower()} "
    tables = [QUESTION_TYPE_KEYWORDS["en"]]
    if language == "it":
        tables.insert(0, QUESTION_TYPE_KEYWORDS["it"])
    for index, (question_type, _) in enumerate(QUESTION_TYPE_KEYWORDS["en"]):
        for table in tables:
            if any(keyword in lowered for keyword in table[index][1]):
                return question_type
    return "extraction"


@dataclass
class PromptEnhancer:
    enabled: bool = True
    mode: str = "strict"
    # "en", "it" or "auto"
    language: str = "auto"

    def enhance(self, question: str) -> str:
        if not self.enabled:
            return question
        language = resolve_language(self.language, question)
        constraints = MODE_CONSTRAINTS[language]
        return PROMPT_TEMPLATES[language].format(
            question=question.strip(),
            constraints=constraints.get(self.mode, constraints["strict"]),
            format_instructions=FORMAT_INSTRUCTIONS[language][classify_question(question, language)],
        )

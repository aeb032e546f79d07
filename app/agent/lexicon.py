"""
Bilingual (Spanish/English) lexicons and static tables used by the intent pipeline.

Control flow in the analyzers reads from these tables only; adding a synonym or a
language variant should never require touching the analyzers themselves.
"""
from __future__ import annotations

import re
from typing import Dict, Iterable, List

from app.schemas.intent import CanvasSection, OffTopicCategory, SectionDependency


SECTION_KEYWORDS: Dict[CanvasSection, List[str]] = {
    CanvasSection.ACCEPTANCE_CRITERIA: [
        "criterios de aceptación", "criterios", "aceptación", "requisitos", "condiciones",
        "debe cumplir", "debe satisfacer", "debe hacer", "debe permitir",
        "acceptance criteria", "criteria", "acceptance", "requirements", "conditions",
        "must satisfy", "must meet", "must allow", "must enable", "should satisfy",
    ],
    CanvasSection.TEST_CASES: [
        "casos de prueba", "caso de prueba", "pruebas", "casos de test", "escenarios de prueba",
        "escenarios", "validación", "verificación",
        "test cases", "test case", "tests", "testing", "scenarios",
        "test scenarios", "validation", "verification", "test plan",
    ],
    CanvasSection.TICKET_SUMMARY: [
        "resumen", "explicación", "descripción", "contexto", "problema",
        "solución", "funcionalidad", "historia",
        "summary", "explanation", "description", "context", "problem",
        "solution", "functionality", "feature", "story", "overview",
    ],
    CanvasSection.CONFIGURATION_WARNINGS: [
        "configuración", "advertencias", "conflictos", "configuraciones", "ajustes",
        "configuration", "warnings", "conflicts", "settings", "config", "setup",
    ],
    CanvasSection.METADATA: [
        "metadatos", "propiedades",
        "metadata", "meta data", "properties",
    ],
}

# Requests to change the canvas. Matched on word boundaries.
MODIFICATION_VERBS: List[str] = [
    "cambiar", "cambia", "cambiá", "modificar", "modifica", "actualizar", "actualiza",
    "corregir", "corrige", "arreglar", "arregla", "mejorar", "mejora", "editar", "edita",
    "ajustar", "ajusta", "alterar", "reemplazar", "reemplaza", "quitar", "quita",
    "agregar", "agrega", "añadir", "añade", "incluir", "incluye", "eliminar", "elimina",
    "borrar", "borra", "reescribir", "reescribe",
    "change", "modify", "update", "correct", "fix", "improve",
    "edit", "revise", "adjust", "alter", "replace", "remove",
    "add", "include", "delete", "eliminate", "rewrite",
]

# Vague complaints that need a follow-up question. Matched as substrings.
VAGUE_COMPLAINTS: List[str] = [
    "está mal", "están mal", "esta mal", "estan mal", "mal definid", "mal escrit",
    "no está bien", "no están bien", "no me gusta", "necesita mejoras", "necesitan mejoras",
    "no funciona", "no sirve", "está incorrecto", "están incorrectos", "incorrecto",
    "está equivocado", "falta algo", "no es suficiente", "podría ser mejor",
    "is wrong", "are wrong", "not right", "not good", "needs improvement",
    "doesn't work", "does not work", "not working", "incorrect", "missing something",
    "not enough", "could be better", "needs work",
]

INFORMATION_PHRASES: List[str] = [
    "qué significa", "puedes explicar", "cómo funciona", "por qué", "cuántos", "cuántas",
    "cuéntame", "dime", "información sobre", "detalles de", "qué es", "cuál es", "cuáles son",
    "what does", "can you explain", "how does", "why", "tell me", "how many",
    "information about", "details about", "what is", "what are", "which",
]

EXPLANATION_PHRASES: List[str] = [
    "explica", "explícame", "explicame", "ayúdame a entender", "no entiendo",
    "clarifica", "aclaración", "cómo se relaciona", "cómo se relacionan",
    "explain", "help me understand", "don't understand", "do not understand",
    "clarify", "how does this relate", "how do these relate",
]

OFF_TOPIC_KEYWORDS: Dict[OffTopicCategory, List[str]] = {
    OffTopicCategory.ENTERTAINMENT: [
        "deporte", "deportes", "fútbol", "futbol", "baloncesto", "tenis", "música", "canciones",
        "películas", "película", "series", "televisión", "cine", "actores", "artistas",
        "juegos", "videojuegos", "entretenimiento", "diversión", "partido", "ganó",
        "sports", "football", "soccer", "basketball", "tennis", "music", "songs",
        "movies", "movie", "films", "television", "tv", "actors", "artists",
        "video games", "entertainment", "match", "won the game",
    ],
    OffTopicCategory.PERSONAL: [
        "familia", "hijos", "esposa", "esposo", "pareja", "amigos",
        "salud", "enfermedad", "médico", "hospital", "vacaciones",
        "viajes", "hogar", "mascotas", "perro", "gato",
        "family", "children", "wife", "husband", "partner", "friends",
        "health", "illness", "doctor", "vacation",
        "travel", "pets", "dog", "cat",
    ],
    OffTopicCategory.GENERAL_TECH: [
        "programación", "desarrollo web", "base de datos", "servidor",
        "redes", "inteligencia artificial", "machine learning",
        "blockchain", "criptomonedas", "hardware",
        "programming", "web development", "database", "server",
        "networking", "artificial intelligence", "cryptocurrency", "bitcoin",
    ],
    OffTopicCategory.UNRELATED_WORK: [
        "reunión", "jefe", "compañeros", "oficina", "trabajo remoto",
        "salario", "promoción", "recursos humanos", "contrato",
        "horario", "vacaciones laborales",
        "meeting", "boss", "colleagues", "office", "remote work",
        "salary", "promotion", "human resources", "contract",
        "schedule", "corporate",
    ],
    OffTopicCategory.SMALL_TALK: [
        "hola", "buenos días", "buenas tardes", "buenas noches",
        "cómo estás", "qué tal", "clima", "lluvia",
        "frío", "calor", "fin de semana",
        "hello", "hi", "good morning", "good afternoon", "good evening",
        "how are you", "what's up", "weather", "rain",
        "weekend",
    ],
    OffTopicCategory.OTHER: [
        "política", "elecciones", "gobierno", "noticias", "economía",
        "religión", "filosofía", "geografía",
        "matemáticas", "física", "química", "biología", "receta", "recetas", "comida",
        "politics", "elections", "government", "news", "economy",
        "religion", "philosophy", "geography",
        "mathematics", "physics", "chemistry", "biology", "recipe", "recipes", "food",
    ],
}

QA_KEYWORDS: List[str] = [
    "qa", "quality assurance", "calidad", "pruebas", "prueba", "testing", "test", "tests",
    "casos de prueba", "test cases", "criterios de aceptación", "criterios", "acceptance criteria",
    "ticket", "jira", "bug", "defecto", "error", "funcionalidad", "functionality",
    "requisitos", "requirements", "especificaciones", "specifications",
    "validación", "validation", "verificación", "verification",
    "feature", "defect", "issue", "escenario", "escenarios", "scenario", "scenarios",
    "lienzo", "canvas", "gherkin", "cobertura", "coverage",
]

# Languages markers used to pick the reply language.
ENGLISH_MARKERS: List[str] = [
    "the", "is", "are", "what", "how", "why", "please", "can", "could", "should",
    "test", "tests", "criteria", "change", "update", "wrong", "this", "these", "with",
]
SPANISH_MARKERS: List[str] = [
    "el", "la", "los", "las", "es", "son", "qué", "cómo", "por", "favor", "puedes",
    "debería", "criterios", "casos", "prueba", "pruebas", "cambiar", "mal", "esto", "con", "de",
]

SECTION_DEPENDENCIES: Dict[CanvasSection, List[SectionDependency]] = {
    CanvasSection.ACCEPTANCE_CRITERIA: [
        SectionDependency(
            from_section=CanvasSection.ACCEPTANCE_CRITERIA,
            to=CanvasSection.TEST_CASES,
            relationship="derives_from",
            strength="strong",
            description="Test cases are typically derived from acceptance criteria",
        ),
    ],
    CanvasSection.TICKET_SUMMARY: [
        SectionDependency(
            from_section=CanvasSection.TICKET_SUMMARY,
            to=CanvasSection.ACCEPTANCE_CRITERIA,
            relationship="implements",
            strength="medium",
            description="Acceptance criteria implement the requirements in the ticket summary",
        ),
        SectionDependency(
            from_section=CanvasSection.TICKET_SUMMARY,
            to=CanvasSection.TEST_CASES,
            relationship="validates",
            strength="medium",
            description="Test cases validate the functionality described in the ticket summary",
        ),
    ],
    CanvasSection.TEST_CASES: [],
    CanvasSection.CONFIGURATION_WARNINGS: [],
    CanvasSection.METADATA: [],
}

HIGH_CONFIDENCE = 0.8
MEDIUM_CONFIDENCE = 0.6
LOW_CONFIDENCE = 0.4
MINIMUM_CONFIDENCE = 0.2

SECTION_DISPLAY_NAMES: Dict[str, Dict[CanvasSection, str]] = {
    "es": {
        CanvasSection.TICKET_SUMMARY: "resumen del ticket",
        CanvasSection.ACCEPTANCE_CRITERIA: "criterios de aceptación",
        CanvasSection.TEST_CASES: "casos de prueba",
        CanvasSection.CONFIGURATION_WARNINGS: "advertencias de configuración",
        CanvasSection.METADATA: "metadatos",
    },
    "en": {
        CanvasSection.TICKET_SUMMARY: "ticket summary",
        CanvasSection.ACCEPTANCE_CRITERIA: "acceptance criteria",
        CanvasSection.TEST_CASES: "test cases",
        CanvasSection.CONFIGURATION_WARNINGS: "configuration warnings",
        CanvasSection.METADATA: "metadata",
    },
}

# Template questions per section. "vague" is used when the user complains without detail.
SECTION_QUESTION_TEMPLATES: Dict[str, Dict[CanvasSection, Dict[str, Dict]]] = {
    "es": {
        CanvasSection.ACCEPTANCE_CRITERIA: {
            "vague": {
                "question": "¿Qué específicamente está mal en los {count} criterios de aceptación actuales?",
                "examples": ["Muy vagos", "Faltan detalles técnicos", "No son testables", "Faltan casos límite"],
                "priority": "high",
            },
            "default": {
                "question": "¿Qué aspecto de los criterios de aceptación necesita mejorar?",
                "examples": ["Agregar más detalle", "Simplificar redacción", "Agregar nuevos criterios", "Reorganizar prioridades"],
                "priority": "high",
            },
        },
        CanvasSection.TEST_CASES: {
            "vague": {
                "question": "¿Qué problema específico ves en los {count} casos de prueba actuales?",
                "examples": ["No cubren todos los escenarios", "Muy complejos", "Faltan casos negativos", "Formato incorrecto"],
                "priority": "high",
            },
            "default": {
                "question": "¿Qué tipo de cambios necesitas en los casos de prueba?",
                "examples": ["Agregar más casos", "Cambiar formato", "Simplificar pasos", "Agregar casos límite"],
                "priority": "high",
            },
        },
        CanvasSection.TICKET_SUMMARY: {
            "default": {
                "question": "¿Qué parte del resumen del ticket necesita actualización?",
                "examples": ["Descripción del problema", "Solución propuesta", "Contexto del sistema"],
                "priority": "high",
            },
        },
        CanvasSection.CONFIGURATION_WARNINGS: {
            "default": {
                "question": "¿Qué advertencias de configuración son incorrectas o innecesarias?",
                "examples": ["Advertencias obsoletas", "Configuración incorrecta", "Faltan advertencias importantes"],
                "priority": "medium",
            },
        },
    },
    "en": {
        CanvasSection.ACCEPTANCE_CRITERIA: {
            "vague": {
                "question": "What specifically is wrong with the {count} current acceptance criteria?",
                "examples": ["Too vague", "Missing technical details", "Not testable", "Missing edge cases"],
                "priority": "high",
            },
            "default": {
                "question": "Which aspect of the acceptance criteria needs improvement?",
                "examples": ["Add more detail", "Simplify wording", "Add new criteria", "Reorder priorities"],
                "priority": "high",
            },
        },
        CanvasSection.TEST_CASES: {
            "vague": {
                "question": "What specific problem do you see in the {count} current test cases?",
                "examples": ["They miss scenarios", "Too complex", "Missing negative cases", "Wrong format"],
                "priority": "high",
            },
            "default": {
                "question": "What kind of changes do you need in the test cases?",
                "examples": ["Add more cases", "Change format", "Simplify steps", "Add edge cases"],
                "priority": "high",
            },
        },
        CanvasSection.TICKET_SUMMARY: {
            "default": {
                "question": "Which part of the ticket summary needs updating?",
                "examples": ["Problem description", "Proposed solution", "System context"],
                "priority": "high",
            },
        },
        CanvasSection.CONFIGURATION_WARNINGS: {
            "default": {
                "question": "Which configuration warnings are wrong or unnecessary?",
                "examples": ["Outdated warnings", "Wrong configuration", "Missing important warnings"],
                "priority": "medium",
            },
        },
    },
}

SCOPE_QUESTION: Dict[str, Dict] = {
    "es": {
        "question": "¿Qué sección específica del lienzo necesita cambios: criterios de aceptación, casos de prueba o resumen del ticket?",
        "examples": ["Criterios de aceptación", "Casos de prueba", "Resumen del ticket"],
    },
    "en": {
        "question": "Which specific canvas section needs changes: acceptance criteria, test cases or ticket summary?",
        "examples": ["Acceptance criteria", "Test cases", "Ticket summary"],
    },
}

DEPENDENCY_QUESTION: Dict[str, Dict] = {
    "es": {
        "question": "Si modifico los criterios de aceptación, ¿también debo actualizar los casos de prueba relacionados?",
        "examples": ["Sí, actualizar automáticamente", "No, mantener como están", "Revisar manualmente después"],
    },
    "en": {
        "question": "If I modify the acceptance criteria, should I also update the related test cases?",
        "examples": ["Yes, update automatically", "No, keep them as they are", "Review manually later"],
    },
}

CLARIFICATION_CONTEXT: Dict[str, Dict[str, str]] = {
    "es": {
        "vague_complaint": "indica que algo está mal, pero necesito más detalles específicos para ayudarte.",
        "scope_clarification": "afecta varias secciones. Necesito entender el alcance exacto de los cambios.",
        "missing_context": "requiere más información específica para realizar los cambios apropiados.",
        "prefix": "Tu mensaje",
        "sections": "Secciones identificadas",
    },
    "en": {
        "vague_complaint": "suggests something is wrong, but I need more specific details to help you.",
        "scope_clarification": "affects several sections. I need to understand the exact scope of the changes.",
        "missing_context": "needs more specific information before the right changes can be made.",
        "prefix": "Your message",
        "sections": "Identified sections",
    },
}

REJECTION_TEMPLATES: Dict[str, Dict[str, str]] = {
    "es": {
        "formal": (
            "Lo siento, pero solo puedo ayudarte con temas relacionados con el ticket de Jira y el análisis de QA. "
            "¿Hay algo específico sobre los criterios de aceptación o los casos de prueba que te gustaría revisar?"
        ),
        "friendly": (
            "¡Me encantaría charlar, pero mi especialidad es la documentación de QA y el análisis de tickets! "
            "¿Revisamos algún aspecto del lienzo actual?"
        ),
        "helpful": (
            "Estoy diseñado para asistir con temas de QA y testing. "
            "¿Hay algo sobre el ticket actual que necesites aclarar o mejorar?"
        ),
    },
    "en": {
        "formal": (
            "I'm sorry, but I can only help with topics related to the Jira ticket and QA analysis. "
            "Is there something specific about the acceptance criteria or test cases you'd like to review?"
        ),
        "friendly": (
            "I'd love to chat, but my specialty is QA documentation and ticket analysis! "
            "Shall we review some part of the current canvas?"
        ),
        "helpful": (
            "I'm designed to assist with QA and testing topics. "
            "Is there something about the current ticket that you need to clarify or improve?"
        ),
    },
}

REDIRECTION_SUGGESTIONS: Dict[str, Dict[OffTopicCategory, List[str]]] = {
    "es": {
        OffTopicCategory.ENTERTAINMENT: [
            "¿Te gustaría revisar los criterios de aceptación del ticket actual?",
            "¿Necesitas ayuda con los casos de prueba?",
            "¿Hay algo específico del análisis de QA que quieras mejorar?",
        ],
        OffTopicCategory.PERSONAL: [
            "¿Podemos enfocarnos en el ticket de Jira actual?",
            "¿Hay aspectos del testing que necesiten atención?",
            "¿Te gustaría que revisemos la documentación de QA?",
        ],
        OffTopicCategory.GENERAL_TECH: [
            "¿Cómo se relaciona esto con el testing del ticket actual?",
            "¿Necesitas ayuda con aspectos específicos de QA?",
            "¿Podemos aplicar esto al análisis de calidad actual?",
        ],
        OffTopicCategory.UNRELATED_WORK: [
            "¿Podemos volver al análisis del ticket de Jira?",
            "¿Hay aspectos de QA que necesiten revisión?",
            "¿Te gustaría mejorar alguna sección del lienzo actual?",
        ],
        OffTopicCategory.SMALL_TALK: [
            "¿Empezamos con el análisis del ticket?",
            "¿Qué aspecto del QA te gustaría revisar primero?",
            "¿Necesitas ayuda con alguna sección específica?",
        ],
        OffTopicCategory.OTHER: [
            "¿Volvemos al tema del ticket de Jira?",
            "¿Hay algo sobre testing que necesites aclarar?",
            "¿Te gustaría que revisemos los criterios de aceptación?",
        ],
    },
    "en": {
        OffTopicCategory.ENTERTAINMENT: [
            "Would you like to review the acceptance criteria for the current ticket?",
            "Do you need help with the test cases?",
            "Is there something specific about the QA analysis you'd like to improve?",
        ],
        OffTopicCategory.PERSONAL: [
            "Can we focus on the current Jira ticket?",
            "Are there testing aspects that need attention?",
            "Would you like us to review the QA documentation?",
        ],
        OffTopicCategory.GENERAL_TECH: [
            "How does this relate to testing the current ticket?",
            "Do you need help with specific QA aspects?",
            "Can we apply this to the current quality analysis?",
        ],
        OffTopicCategory.UNRELATED_WORK: [
            "Can we return to analyzing the Jira ticket?",
            "Are there QA aspects that need review?",
            "Would you like to improve any section of the current canvas?",
        ],
        OffTopicCategory.SMALL_TALK: [
            "Shall we start with the ticket analysis?",
            "What aspect of QA would you like to review first?",
            "Do you need help with any specific section?",
        ],
        OffTopicCategory.OTHER: [
            "Shall we return to the Jira ticket topic?",
            "Is there something about testing you need to clarify?",
            "Would you like us to review the acceptance criteria?",
        ],
    },
}

CATEGORY_TONES: Dict[OffTopicCategory, str] = {
    OffTopicCategory.ENTERTAINMENT: "friendly",
    OffTopicCategory.PERSONAL: "helpful",
    OffTopicCategory.GENERAL_TECH: "helpful",
    OffTopicCategory.UNRELATED_WORK: "formal",
    OffTopicCategory.SMALL_TALK: "friendly",
    OffTopicCategory.OTHER: "formal",
}


_PATTERN_CACHE: Dict[str, "re.Pattern[str]"] = {}


def _pattern(keyword: str) -> "re.Pattern[str]":
    pat = _PATTERN_CACHE.get(keyword)
    if pat is None:
        pat = re.compile(r"(?<!\w)" + re.escape(keyword) + r"(?!\w)", re.IGNORECASE)
        _PATTERN_CACHE[keyword] = pat
    return pat


def contains_keyword(text: str, keyword: str) -> bool:
    """Whole-word match for single words, substring match for phrases."""
    if " " in keyword.strip():
        return keyword.lower() in (text or "").lower()
    return bool(_pattern(keyword).search(text or ""))


def match_keywords(text: str, keywords: Iterable[str]) -> List[str]:
    """Return the distinct keywords found in text, in lexicon order."""
    found: List[str] = []
    for kw in keywords:
        if kw not in found and contains_keyword(text, kw):
            found.append(kw)
    return found


def contains_phrase(text: str, phrases: Iterable[str]) -> List[str]:
    lowered = (text or "").lower()
    return [p for p in phrases if p in lowered]


def detect_language(text: str) -> str:
    """Best-effort reply language for a message; Spanish unless English clearly dominates."""
    if not text:
        return "es"
    if re.search(r"[¿¡ñáéíóú]", text, re.IGNORECASE):
        return "es"
    en = len(match_keywords(text, ENGLISH_MARKERS))
    es = len(match_keywords(text, SPANISH_MARKERS))
    return "en" if en > es else "es"

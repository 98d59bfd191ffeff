"""
Prompt templates used by the evolution workflows.
"""

from typing import Dict

from glossa.communication.message_types import (
    WORKING_LAYERS,
    Dictionary,
    Layer,
    Specifications,
    dictionary_to_string,
)

LANGUAGE_NAME = "Toki Pona"

LAYER_SPECIFIC_INSTRUCTIONS: Dict[Layer, str] = {
    Layer.DICTIONARY: (
        "Do not discuss the structure of the dictionary. Rather, discuss the "
        "words and enhancements that may need to be made to them."
    ),
}

LOGOGRAM_GENERATOR_INSTRUCTIONS = (
    "You design logograms as SVG images. Each reply is a JSON object with the "
    "word's name, the complete SVG source, a short explanation of your changes "
    "and a stop flag you set to true once the logogram needs no further work. "
    "Keep every logogram consistent with the logography specification."
)

LOGOGRAM_ADVERSARY_INSTRUCTIONS = (
    "You critique logograms designed as SVG images. Each reply is a JSON object "
    "with the word's name, your critique and a stop flag you set to true once "
    "the logogram is faithful to its word and to the logography specification."
)

DICTIONARY_UPDATE_INSTRUCTIONS = "This is the current dictionary\n{dictionary}"

WORD_DETECTION_INSTRUCTIONS = (
    "List every word of the following dictionary that appears in the text you "
    "receive.\n{dictionary}"
)


def kickoff_message(layer: Layer) -> str:
    return f"Hello, let's begin developing {LANGUAGE_NAME} {layer}. You go first."


def initial_instructions(layer: Layer, specifications: Specifications, dictionary: Dictionary) -> str:
    """
    Instructions appended to every agent on ``layer`` before its round.

    Carries the specification of each layer up to and including ``layer``,
    lowest first, followed by the dictionary and the grammar.
    """
    parts = [
        f"You and your interlocutors are responsible for developing {layer}. "
        "Reason and discuss using the current specification.\n"
        f"Here is the current specification for {layer}.\n"
    ]
    for working in WORKING_LAYERS:
        if working > layer:
            break
        parts.append(specifications.get(working, ""))
        parts.append("\n")

    parts.append("Here is the complete dictionary of all words in the language:\n")
    parts.append(dictionary_to_string(dictionary))
    parts.append(LAYER_SPECIFIC_INSTRUCTIONS.get(layer, ""))
    parts.append("\n")
    parts.append("Here is the complete grammar of the language:\n")
    parts.append(specifications.get(Layer.GRAMMAR, ""))
    return "".join(parts)


def summarization_instructions(layer: Layer, specification: str) -> str:
    return (
        f"The current specification is for: {layer}. "
        f"Here is the current specification:\n{specification}"
    )


def logogram_context(specifications: Specifications) -> str:
    return (
        "\nHere is the current dictionary:\n"
        + specifications.get(Layer.DICTIONARY, "")
        + "\nHere is the current logography specification:\n"
        + specifications.get(Layer.LOGOGRAPHY, "")
    )


def initial_logogram_response(word: str) -> str:
    return f"This is the initial svg. We will be developing logogram for the word: {word}"

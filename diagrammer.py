"""
Turns a request plus background knowledge into a CausalMap via a chat model.
"""

from __future__ import annotations

import json
import logging
import os
from typing import List, Optional

from causal_map import CausalMap
from chat_client import USER_ROLE, Message, OllamaChatClient, ResponseFormat
from response_schema import schema_for

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = int(os.environ.get("CLD_MAX_TOKENS", str(64 * 1024)))
RESPONSE_FORMAT_NAME = "relationships_response"

SYSTEM_PROMPT = """You are a System Dynamics Professional Modeler.
Users will give you text, and it is your job to generate causal relationships from that text.

You will conduct a multistep process:

1. Identify all words that have a cause and effect relationship between two entities in the text. These entities are variables. Name these variables in a concise manner. A variable name should not be more than 5 words. Make sure that you minimize the number of variables used. Variable names should be neutral, i.e., there shouldn't be positive or negative meaning in variable names.

2. For each variable, represent its causal relationships with other variables. There are two types of causal relationships: positive and negative. A positive relationship exists if a decline in variable1 leads to a decline in variable2, or an increase in variable1 leads to an increase in variable2. A negative relationship exists if an increase in variable1 leads to a decline in variable2, or a decline in variable1 leads to an increase in variable2.

3. Not all variables will have relationships with all other variables. Only report relationships that are supported by the text or by the background knowledge you were given.

4. Close the feedback loops the text describes: if the text says a variable eventually affects the variable that started the chain, include that relationship.

5. Use the same name every time you refer to the same variable.

Your response must be valid JSON that conforms to this JSON Schema:

{schema}
"""

BACKGROUND_PROMPT = """Please be sure to consider the following critically important information when you give your answer.

{backgroundKnowledge}"""


class CausalLoopDiagrammer:
    def __init__(
        self,
        client: OllamaChatClient,
        *,
        schema_variant: str = "causal_chains",
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: Optional[float] = None,
    ):
        self.client = client
        self.schema_variant = schema_variant
        self.schema = schema_for(schema_variant)
        self.max_tokens = max_tokens
        self.temperature = temperature

    def build_messages(self, prompt: str, background_knowledge: str = "") -> List[Message]:
        msgs: List[Message] = []
        if background_knowledge:
            msgs.append(Message(USER_ROLE, BACKGROUND_PROMPT.replace("{backgroundKnowledge}", background_knowledge)))
        msgs.append(Message(USER_ROLE, prompt))
        return msgs

    def system_prompt(self) -> str:
        return SYSTEM_PROMPT.replace("{schema}", json.dumps(self.schema, indent=4))

    def generate(self, prompt: str, background_knowledge: str = "") -> CausalMap:
        content = self.client.chat_completion(
            self.build_messages(prompt, background_knowledge),
            system_prompt=self.system_prompt(),
            response_format=ResponseFormat(RESPONSE_FORMAT_NAME, self.schema, strict=True),
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        causal_map = CausalMap.from_json(content)
        logger.info(
            "decoded map %r: %d edges (%s shape)",
            causal_map.title,
            len(causal_map.edges()),
            self.schema_variant,
        )
        return causal_map

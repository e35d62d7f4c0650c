"""Model-backed stage agent — one chat model per stage, no shared client."""

from langchain_anthropic import ChatAnthropic
from langchain_google_genai import ChatGoogleGenerativeAI

from pmcr.clients import StageClient
from pmcr.contracts import Stage
from pmcr.utils.parsing import ainvoke_with_retry


def make_chat_model(model_name: str):
    """Return a chat model for the given name: Claude models via Anthropic, everything else via Gemini."""
    if model_name.startswith("claude"):
        return ChatAnthropic(model=model_name, temperature=0)
    return ChatGoogleGenerativeAI(model=model_name, temperature=0)


class ModelStageAgent(StageClient):
    """A stage answered by a chat model.

    Subclasses set SYSTEM_PROMPT and implement ``_build_prompt`` and
    ``_parse`` (model text -> reply dict in the stage's wire shape).
    """

    SYSTEM_PROMPT = ""

    def __init__(self, stage: Stage, model_name: str):
        super().__init__(stage)
        self.model_name = model_name
        self._llm = None

    @property
    def llm(self):
        if self._llm is None:
            self._llm = make_chat_model(self.model_name)
        return self._llm

    async def _send(self, request: dict) -> dict:
        messages = [
            {"role": "system", "content": self.SYSTEM_PROMPT},
            {"role": "user", "content": self._build_prompt(request)},
        ]
        response = await ainvoke_with_retry(self.llm, messages)
        return self._parse(str(response.content), request)

    def _build_prompt(self, request: dict) -> str:
        raise NotImplementedError

    def _parse(self, text: str, request: dict) -> dict:
        raise NotImplementedError

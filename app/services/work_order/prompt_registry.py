"""Registry mapping company ids to their Stage 2 work-order prompts."""

from dataclasses import dataclass
from typing import Dict, List, Optional

from app.prompts.system_prompts import WORK_ORDER_GENERATION_PROMPT
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)


@dataclass(frozen=True)
class PromptEntry:
    """Prompt configuration for one company.

    Attributes:
        company_id: Company identifier used across the pipeline
        company_name: Display name stored on the work order
        version: Prompt version, bumped whenever the instructions change
        instructions: Company-specific additions to the base prompt
    """
    company_id: str
    company_name: str
    version: str
    instructions: str = ""

    @property
    def identifier(self) -> str:
        """Identifier persisted with each work order (``<company_id>_<version>``)."""
        return f"{self.company_id}_{self.version}"

    def render(self, file_name: str) -> str:
        extra = f"\nCompany-specific rules:\n{self.instructions}" if self.instructions else ""
        return WORK_ORDER_GENERATION_PROMPT.format(
            company_name=self.company_name,
            company_id=self.company_id,
            file_name=file_name,
            company_instructions=extra,
        )


_ENTRIES = [
    PromptEntry(
        company_id="NOHARA_G",
        company_name="野原G住環境",
        version="V20250526",
        instructions="- The site code printed next to 現場名 must be kept with the site name.",
    ),
    PromptEntry(
        company_id="NOHARA_G_MISAWA",
        company_name="野原G住環境_ミサワホーム",
        version="V20250526",
        instructions="- ミサワホーム orders list the house model number under 備考; keep it.",
    ),
    PromptEntry(
        company_id="NOHARA_G_TAMAC",
        company_name="野原G住環境_タマック",
        version="V20250610",
    ),
    PromptEntry(
        company_id="KATOUBENIYA_IKEBUKURO_MISAWA",
        company_name="加藤ベニヤ池袋_ミサワホーム",
        version="V20250526",
        instructions="- Split items that share one line with a slash into separate lines.",
    ),
    PromptEntry(
        company_id="KATOUBENIYA_IKEBUKURO",
        company_name="加藤ベニヤ池袋",
        version="V20250610",
    ),
    PromptEntry(
        company_id="KATOUBENIYA_ASAGIRI",
        company_name="加藤ベニヤ朝霧",
        version="V20250610",
    ),
    PromptEntry(
        company_id="JUTEC",
        company_name="ジューテック",
        version="V20250610",
    ),
    PromptEntry(
        company_id="JAPAN_KENZAI",
        company_name="ジャパン建材",
        version="V20250610",
    ),
    PromptEntry(
        company_id="AIBUILD",
        company_name="アイビルド",
        version="V20250610",
    ),
    PromptEntry(
        company_id="GOODHOUSER",
        company_name="グッドハウザー",
        version="V20250610",
    ),
    PromptEntry(
        company_id="YAMAFUJI",
        company_name="株式会社山藤",
        version="V20250610",
    ),
    PromptEntry(
        company_id="SONOTA",
        company_name="その他",
        version="V20250610",
        instructions="- The issuing company is not one of the regular clients; name it exactly as printed.",
    ),
]

PROMPT_REGISTRY: Dict[str, PromptEntry] = {entry.company_id: entry for entry in _ENTRIES}


class PromptRegistry:
    """Lookup over registered work-order prompts."""

    def __init__(self, entries: Optional[Dict[str, PromptEntry]] = None):
        self._entries = dict(PROMPT_REGISTRY if entries is None else entries)

    def get_prompt(self, company_id: str) -> Optional[PromptEntry]:
        """Return the prompt entry for a company, or None if unregistered."""
        entry = self._entries.get(company_id)
        if entry is None:
            LOGGER.warning(f"No prompt found in registry for company_id: {company_id}")
        return entry

    def company_ids(self) -> List[str]:
        return list(self._entries)

    def company_names(self) -> Dict[str, str]:
        return {company_id: entry.company_name for company_id, entry in self._entries.items()}

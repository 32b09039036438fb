"""
app/config.py

Configuração do bot via Dynaconf.

Exporta:
- `settings`          — objeto Dynaconf lido de settings.toml / .secrets.toml / env
- `BotConfig`         — valores imutáveis capturados uma única vez no startup
- `load_bot_config()` — monta o BotConfig a partir das settings
"""

from dataclasses import dataclass, field

from dynaconf import Dynaconf, Validator

settings = Dynaconf(
    settings_files=["settings.toml", ".secrets.toml"],
    environments=True,
    env_switcher="ENV_FOR_DYNACONF",
    envvar_prefix="CONFESSBOT",
    load_dotenv=True,
    validators=[
        Validator("BOT_TOKEN", must_exist=True),
        Validator("DATABASE_URL", must_exist=True),
    ],
)


@dataclass(frozen=True)
class BotConfig:
    bot_username: str
    channel_id: str
    admin_ids: frozenset[int] = field(default_factory=frozenset)
    confession_cooldown_ms: int = 60_000
    comment_window_ms: int = 30_000
    comment_max_per_window: int = 3
    comments_page_size: int = 5

    def is_admin(self, user_id: int) -> bool:
        return user_id in self.admin_ids


def _parse_admin_ids(raw) -> frozenset[int]:
    """Aceita lista TOML ou string separada por vírgulas ("1,2,3")."""
    if raw is None:
        return frozenset()
    if isinstance(raw, (int, str)):
        raw = str(raw).split(",")
    return frozenset(int(str(item).strip()) for item in raw if str(item).strip())


def load_bot_config(source=None) -> BotConfig:
    """
    Constrói o BotConfig a partir das settings.
    Chamado uma vez no lifespan; o resultado é repassado explicitamente
    ao Dispatcher e ao ciclo de vida das confissões.
    """
    source = source if source is not None else settings
    return BotConfig(
        bot_username=source.get("bot_username", ""),
        channel_id=str(source.get("channel_id", "")),
        admin_ids=_parse_admin_ids(source.get("admin_ids")),
        confession_cooldown_ms=int(source.get("confession_cooldown_seconds", 60)) * 1000,
        comment_window_ms=int(source.get("comment_window_seconds", 30)) * 1000,
        comment_max_per_window=int(source.get("comment_max_per_window", 3)),
        comments_page_size=int(source.get("comments_page_size", 5)),
    )

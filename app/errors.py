"""
app/errors.py

Taxonomia de erros do bot.

Toda exceção carrega `user_message`, o texto mostrado ao usuário pelo
Dispatcher. O tipo decide o que acontece com o fluxo conversacional ativo:

- ValidationError          → re-prompt, fluxo continua aberto
- AuthError / NotFoundError → mensagem terminal, fluxo é limpo
- CooldownError / RateLimitError → mensagem de espera, nada muda
- StoreError               → falha de persistência, mensagem genérica
"""


class ConfessBotError(Exception):
    user_message = "❌ Something went wrong. Please try again."

    def __init__(self, user_message: str | None = None):
        if user_message is not None:
            self.user_message = user_message
        super().__init__(self.user_message)


class ValidationError(ConfessBotError):
    user_message = "❌ Invalid input."


class AuthError(ConfessBotError):
    user_message = "❌ Access denied. Admin only."


class BlockedUserError(AuthError):
    user_message = "❌ Your account has been blocked by admin."


class NotFoundError(ConfessBotError):
    user_message = "❌ Not found."


class CooldownError(ConfessBotError):
    def __init__(self, retry_after: int):
        self.retry_after = retry_after
        super().__init__(
            f"Please wait {retry_after} seconds before submitting another confession."
        )


class RateLimitError(ConfessBotError):
    user_message = "❌ Too many comments. Please wait before adding another comment."


class InvalidTransitionError(ConfessBotError):
    user_message = "❌ This confession can no longer be changed."


class SelfFollowError(ConfessBotError):
    user_message = "❌ You cannot follow yourself"


class AlreadyFollowingError(ConfessBotError):
    user_message = "❌ You are already following this user!"


class StoreError(ConfessBotError):
    user_message = "❌ Something went wrong while saving. Please try again."

from abc import ABC, abstractmethod


class IMailer(ABC):
    @abstractmethod
    async def send_otp_email(self, to_email: str, code: str, name: str | None = None) -> bool:
        """Deliver a verification code.

        Args:
            to_email: Recipient address
            code: Plaintext verification code
            name: Recipient display name

        Returns:
            True if the provider accepted the message, False otherwise
        """
        pass

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Credentials:
    """
    Value Object holding a resolved cloud secret.
    """
    secret_id: str
    values: dict[str, str] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        if not self.secret_id:
            raise ValueError("Secret ID cannot be empty")

    def get(self, key: str, default: str = "") -> str:
        return self.values.get(key, default)

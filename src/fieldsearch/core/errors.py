"""Search engine exceptions."""


class SearchConfigurationError(ValueError):
    """Invalid engine configuration (fields, synonyms, logic, item table)."""


class FieldRegistrationError(SearchConfigurationError):
    """Field definition is invalid or conflicts with an existing one."""


class SynonymParseError(SearchConfigurationError):
    """Synonym text or file could not be parsed."""


class InvalidLogicError(SearchConfigurationError):
    """Search logic other than AND or OR."""

from typing import Any, Dict, List

from marketsync.core.exceptions import BusinessError


def batch_records(body: Any, key: str) -> List[Any]:
    """
    Pull the record list out of a batch request body ({"products": [...]})

    Raises:
        BusinessError: If the list is missing or empty
    """
    records = body.get(key) if isinstance(body, dict) else None
    if not records or not isinstance(records, list):
        raise BusinessError(f"Request must contain a non-empty '{key}' list")
    return records


def result_data(result) -> Dict[str, Any]:
    return result.model_dump(by_alias=True)

"""
License utility functions for normalising license identifiers and resolving
canonical license URLs.
"""
import logging
from typing import Dict, Optional

logger = logging.getLogger(__name__)

# Canonical URLs for well-known licenses, keyed by lower-case identifier
LICENSE_URLS: Dict[str, str] = {
    "apache-2.0": "https://www.apache.org/licenses/LICENSE-2.0",
    "mit": "https://opensource.org/licenses/MIT",
    "bsd-3-clause": "https://opensource.org/licenses/BSD-3-Clause",
    "bsd-2-clause": "https://opensource.org/licenses/BSD-2-Clause",
    "gpl-3.0": "https://www.gnu.org/licenses/gpl-3.0.html",
    "gpl-2.0": "https://www.gnu.org/licenses/old-licenses/gpl-2.0.html",
    "lgpl-3.0": "https://www.gnu.org/licenses/lgpl-3.0.html",
    "lgpl-2.1": "https://www.gnu.org/licenses/old-licenses/lgpl-2.1.html",
    "cc-by-4.0": "https://creativecommons.org/licenses/by/4.0/",
    "cc-by-sa-4.0": "https://creativecommons.org/licenses/by-sa/4.0/",
    "cc-by-nc-4.0": "https://creativecommons.org/licenses/by-nc/4.0/",
    "cc0-1.0": "https://creativecommons.org/publicdomain/zero/1.0/",
    "unlicense": "https://unlicense.org/",
    "llama2": "https://github.com/facebookresearch/llama/blob/main/LICENSE",
    "llama3": "https://github.com/meta-llama/llama-models/blob/main/models/llama3/LICENSE",
    "llama3.1": "https://github.com/meta-llama/llama-models/blob/main/models/llama3_1/LICENSE",
    "llama3.2": "https://github.com/meta-llama/llama-models/blob/main/models/llama3_2/LICENSE",
    "llama3.3": "https://github.com/meta-llama/llama-models/blob/main/models/llama3_3/LICENSE",
    "llama4": "https://github.com/meta-llama/llama-models/blob/main/models/llama4/LICENSE",
    "bigscience-openrail-m": "https://huggingface.co/spaces/bigscience/license",
    "openrail": "https://www.licenses.ai/ai-licenses",
    "gemma": "https://ai.google.dev/gemma/terms",
}

# Mapping common spelled-out names to the identifiers above
LICENSE_MAPPING: Dict[str, str] = {
    "apache 2.0": "apache-2.0",
    "apache license 2.0": "apache-2.0",
    "apache license, version 2.0": "apache-2.0",
    "apache license version 2.0": "apache-2.0",
    "mit license": "mit",
    "bsd 3-clause": "bsd-3-clause",
    "bsd 2-clause": "bsd-2-clause",
    "gplv3": "gpl-3.0",
    "gplv2": "gpl-2.0",
    "llama 2": "llama2",
    "llama 3": "llama3",
    "llama 3.1": "llama3.1",
    "llama 3.2": "llama3.2",
    "llama 3.3": "llama3.3",
    "llama 4": "llama4",
}


def normalize_license_id(license_id: Optional[str]) -> Optional[str]:
    """
    Normalise a license string to a known identifier if possible.
    Returns None if no clear mapping is found.
    """
    if not license_id:
        return None

    lower_id = license_id.strip().lower()
    if lower_id in LICENSE_URLS:
        return lower_id
    if lower_id in LICENSE_MAPPING:
        return LICENSE_MAPPING[lower_id]
    return None


def get_license_url(license_id: Optional[str]) -> Optional[str]:
    """Get the canonical URL for a well-known license, or None."""
    normalized = normalize_license_id(license_id)
    if normalized is None:
        return None
    return LICENSE_URLS[normalized]

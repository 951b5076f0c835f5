"""
Index definitions for posts and users

Free-text fields are analyzed twice: the main field with a CJK analyzer and
an `.english` sub-field with a stemming analyzer. Identifiers are keywords.
"""
from typing import Any, Dict

_COMMON_FILTERS: Dict[str, Any] = {
    "ngram_filter": {"type": "ngram", "min_gram": 1, "max_gram": 2},
    "edge_ngram_filter": {"type": "edge_ngram", "min_gram": 2, "max_gram": 15},
    "english_stop": {"type": "stop", "stopwords": "_english_"},
    "english_stemmer": {"type": "stemmer", "language": "english"},
    "english_possessive_stemmer": {"type": "stemmer", "language": "possessive_english"},
}

_ENGLISH_ANALYZER: Dict[str, Any] = {
    "type": "custom",
    "tokenizer": "standard",
    "filter": [
        "lowercase",
        "asciifolding",
        "english_stop",
        "english_stemmer",
        "english_possessive_stemmer",
        "edge_ngram_filter",
    ],
}


def _bilingual_text(keyword: bool = False) -> Dict[str, Any]:
    fields: Dict[str, Any] = {
        "english": {"type": "text", "analyzer": "english_analyzer"},
    }
    if keyword:
        fields["keyword"] = {"type": "keyword"}
    return {"type": "text", "analyzer": "chinese_analyzer", "fields": fields}


POSTS_INDEX: Dict[str, Any] = {
    "settings": {
        "analysis": {
            "analyzer": {
                # Requires the analysis-smartcn plugin
                "chinese_analyzer": {"type": "custom", "tokenizer": "smartcn_tokenizer"},
                "english_analyzer": _ENGLISH_ANALYZER,
            },
            "filter": _COMMON_FILTERS,
        }
    },
    "mappings": {
        "properties": {
            "content": {
                "type": "text",
                "analyzer": "chinese_analyzer",
                "search_analyzer": "chinese_analyzer",
                "fields": {
                    "english": {
                        "type": "text",
                        "analyzer": "english_analyzer",
                        "search_analyzer": "english_analyzer",
                    }
                },
            },
            "user_id": {"type": "keyword"},
            "user_name": _bilingual_text(keyword=True),
            "likes_count": {"type": "integer"},
            "comment_count": {"type": "integer"},
            "created_at": {"type": "date"},
        }
    },
}

USERS_INDEX: Dict[str, Any] = {
    "settings": {
        "analysis": {
            "analyzer": {
                "chinese_analyzer": {
                    "type": "custom",
                    "tokenizer": "standard",
                    "filter": ["lowercase", "asciifolding", "ngram_filter"],
                    "char_filter": ["html_strip"],
                },
                "english_analyzer": _ENGLISH_ANALYZER,
            },
            "filter": _COMMON_FILTERS,
        }
    },
    "mappings": {
        "properties": {
            "user_name": _bilingual_text(keyword=True),
            "account_name": _bilingual_text(keyword=True),
            "bio": _bilingual_text(),
            "is_public": {"type": "boolean"},
            "avatar_url": {"type": "keyword"},
            "followers_count": {"type": "integer"},
            "following_count": {"type": "integer"},
            "created_at": {"type": "date"},
        }
    },
}

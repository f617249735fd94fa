"""Classify a page of starred articles by calendar month."""

from typing import Iterable

from starindex.models.article import StarredArticle
from starindex.models.index import MonthKey
from starindex.models.scan import PageClassification


def classify_page(articles: Iterable[StarredArticle]) -> PageClassification:
    """Extract the months present on a page and its oldest/newest months.

    Extremes are chosen by full timestamp, so the result is correct even
    when the page is not strictly ordered. Articles without a publication
    date are ignored. Months are bucketed in UTC.

    Args:
        articles: Articles from one page

    Returns:
        PageClassification; empty (oldest/newest None) when no article
        carries a date
    """
    result = PageClassification()

    for article in articles:
        published = article.published_utc
        if published is None:
            continue

        key = MonthKey(published.year, published.month)
        result.months_present.add(key)
        result.month_counts[key] = result.month_counts.get(key, 0) + 1

        if result.oldest_published is None or published < result.oldest_published:
            result.oldest_published = published
            result.oldest = key

        if result.newest_published is None or published > result.newest_published:
            result.newest_published = published
            result.newest = key

    return result


def describe_page(page: int, classification: PageClassification) -> dict:
    """Log-friendly summary of a classified page"""
    if classification.is_empty:
        return {"page": page, "articles": 0}

    return {
        "page": page,
        "articles": sum(classification.month_counts.values()),
        "months": [key.label() for key in classification.months_newest_first()],
        "newest": classification.newest_published.isoformat(),
        "oldest": classification.oldest_published.isoformat(),
    }

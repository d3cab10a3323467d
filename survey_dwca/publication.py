"""
Publication pages: a landing page per dataset, an RSS feed and an index page
linking every dataset.
"""

import logging
from datetime import datetime, timezone
from email.utils import format_datetime
from pathlib import Path
from typing import List, Optional

from survey_dwca.archive import archive_url, escape_xml
from survey_dwca.identifiers import Dataset

logger = logging.getLogger(__name__)

FEED_FILE = "rss.xml"
INDEX_FILE = "index.html"


class PublicationIndexBuilder:
    """Write landing pages, the feed and the index under the output directory."""

    def __init__(self, output_dir: Path, base_url: str):
        self.output_dir = Path(output_dir)
        self.base_url = base_url.rstrip('/')

    def landing_url(self, dataset: Dataset) -> str:
        return f"{self.base_url}/{dataset.dataset_id}/"

    def write_landing_page(self, dataset: Dataset) -> Path:
        """Standalone HTML page describing one dataset and linking its archive."""
        metadata = dataset.metadata
        page = f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>{escape_xml(dataset.title)}</title>
</head>
<body>
  <h1>{escape_xml(dataset.title)}</h1>
  <p><strong>Creator:</strong> {escape_xml(metadata.get('creator'))}</p>
  <h2>Abstract</h2>
  <p>{escape_xml(metadata.get('abstract'))}</p>
  <h2>Citation</h2>
  <p>{escape_xml(metadata.get('citation'))}</p>
  <p><a href="{escape_xml(archive_url(self.base_url, dataset.dataset_id))}">Download Darwin Core Archive</a>
     ({dataset.record_count} records)</p>
</body>
</html>
"""
        path = self.output_dir / dataset.dataset_id / INDEX_FILE
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(page, encoding='utf-8')
        return path

    def write_feed(self, datasets: List[Dataset], published: Optional[datetime] = None) -> Path:
        """RSS 2.0 feed with one item per dataset."""
        published = published or datetime.now(timezone.utc)
        pub_date = format_datetime(published)

        items = ""
        for dataset in datasets:
            items += f"""
    <item>
      <title>{escape_xml(dataset.title)}</title>
      <link>{escape_xml(self.landing_url(dataset))}</link>
      <guid isPermaLink="false">{escape_xml(dataset.dataset_id)}</guid>
      <description>{escape_xml(dataset.metadata.get('abstract'))}</description>
      <enclosure url="{escape_xml(archive_url(self.base_url, dataset.dataset_id))}" type="application/zip"/>
      <pubDate>{pub_date}</pubDate>
    </item>"""

        feed = f"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0">
  <channel>
    <title>Survey Darwin Core Archives</title>
    <link>{escape_xml(self.base_url)}/</link>
    <description>Darwin Core Archives published from the survey export</description>
    <lastBuildDate>{pub_date}</lastBuildDate>{items}
  </channel>
</rss>
"""
        path = self.output_dir / FEED_FILE
        path.write_text(feed, encoding='utf-8')
        return path

    def write_index(self, datasets: List[Dataset]) -> Path:
        """HTML index linking every dataset landing page."""
        links = "".join(
            f'\n    <li><a href="{escape_xml(dataset.dataset_id)}/">{escape_xml(dataset.title)}</a></li>'
            for dataset in sorted(datasets, key=lambda d: d.dataset_id)
        )
        page = f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>Survey Darwin Core Archives</title>
</head>
<body>
  <h1>Survey Darwin Core Archives</h1>
  <p><a href="{FEED_FILE}">RSS feed</a></p>
  <ul>{links}
  </ul>
</body>
</html>
"""
        path = self.output_dir / INDEX_FILE
        path.write_text(page, encoding='utf-8')
        return path

    def build(self, datasets: List[Dataset]):
        """Write every landing page plus the feed and index."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        for dataset in datasets:
            self.write_landing_page(dataset)
        self.write_feed(datasets)
        self.write_index(datasets)
        logger.info("Wrote publication index for %d datasets", len(datasets))

from __future__ import annotations

CREATE_PASSES_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS passes (
  ts_ms BIGINT,
  map_id TEXT,
  pass_no INTEGER,
  trigger TEXT,
  polygon_count INTEGER,
  marker_count INTEGER,
  visible_count INTEGER,
  invalid_count INTEGER,
  duration_ms DOUBLE
);
"""

SUMMARY_SQL_TEMPLATE = """
SELECT
  map_id,
  COUNT(*) AS n,
  MAX(pass_no) AS last_pass_no,
  AVG(duration_ms) AS avg_ms,
  quantile_cont(duration_ms, 0.50) AS p50_ms,
  quantile_cont(duration_ms, 0.95) AS p95_ms,
  AVG(visible_count) AS avg_visible,
  MAX(invalid_count) AS max_invalid
FROM passes
{where_sql}
GROUP BY map_id
ORDER BY map_id
"""

INSERT_PASSES_SQL = """
INSERT INTO passes
  (ts_ms, map_id, pass_no, trigger, polygon_count, marker_count, visible_count, invalid_count, duration_ms)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
"""

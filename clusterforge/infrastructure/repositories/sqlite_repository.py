"""
SQLite Repository

Architectural Intent:
- Persistent storage backend for cluster and node pool records using SQLite
  (stdlib, zero external deps)
- Implements ClusterRepositoryPort for the lifecycle controllers
- Uses WAL mode for concurrent read/write support

Design Decisions:
- Single database file at configurable path (default: clusterforge.db)
- Auto-creates tables on first use
- Thread-safe via sqlite3's check_same_thread=False
- Timestamps stored as ISO 8601 strings, provider outputs as a JSON column
- save() writes the cluster row and replaces its node pool set inside one
  transaction; node_pools rows cascade on cluster delete
"""

from __future__ import annotations
import sqlite3
import json
import logging
from dataclasses import replace
from datetime import datetime, UTC
from typing import Optional

from clusterforge.domain.entities.cluster import ClusterSpec, ClusterStatus
from clusterforge.domain.entities.node_pool import NodePoolCurrent
from clusterforge.domain.exceptions import ClusterNotFoundError
from clusterforge.domain.ports.cluster_repository_port import ClusterRepositoryPort

logger = logging.getLogger(__name__)


def _ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SQLiteClusterRepository(ClusterRepositoryPort):
    """Cluster storage using SQLite."""

    def __init__(self, db_path: str = "clusterforge.db"):
        self._db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None

    def connect(self) -> None:
        """Open database connection and create tables."""
        self._conn = sqlite3.connect(
            self._db_path,
            check_same_thread=False,
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.row_factory = sqlite3.Row
        self._create_tables()
        logger.info("SQLite repository connected: %s", self._db_path)

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def _create_tables(self) -> None:
        """Create tables if they don't exist."""
        assert self._conn is not None
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS clusters (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                organization_id INTEGER NOT NULL,
                location TEXT NOT NULL,
                cloud TEXT NOT NULL,
                secret_id TEXT NOT NULL,
                ssh_secret_id TEXT DEFAULT '',
                version TEXT DEFAULT '',
                status TEXT NOT NULL,
                status_message TEXT DEFAULT '',
                created_by INTEGER,
                created_at TEXT NOT NULL,
                properties TEXT DEFAULT '{}'
            );

            CREATE TABLE IF NOT EXISTS node_pools (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                cluster_id INTEGER NOT NULL REFERENCES clusters(id) ON DELETE CASCADE,
                name TEXT NOT NULL,
                instance_type TEXT DEFAULT '',
                image TEXT DEFAULT '',
                spot_price TEXT DEFAULT '',
                count INTEGER NOT NULL DEFAULT 0,
                autoscaling INTEGER NOT NULL DEFAULT 0,
                min_count INTEGER NOT NULL DEFAULT 0,
                max_count INTEGER NOT NULL DEFAULT 0,
                created_by INTEGER,
                created_at TEXT NOT NULL,
                UNIQUE (cluster_id, name)
            );

            CREATE INDEX IF NOT EXISTS idx_clusters_org ON clusters(organization_id);
            CREATE INDEX IF NOT EXISTS idx_node_pools_cluster ON node_pools(cluster_id);
        """)

    # -- Clusters ------------------------------------------------------------

    def load(self, cluster_id: int) -> ClusterSpec:
        """Load a cluster with its node pools."""
        assert self._conn is not None
        row = self._conn.execute(
            "SELECT * FROM clusters WHERE id = ?", (cluster_id,)
        ).fetchone()
        if row is None:
            raise ClusterNotFoundError(f"Cluster {cluster_id} not found")

        pool_rows = self._conn.execute(
            "SELECT * FROM node_pools WHERE cluster_id = ? ORDER BY name",
            (cluster_id,),
        ).fetchall()
        return ClusterSpec(
            id=row["id"],
            name=row["name"],
            organization_id=row["organization_id"],
            location=row["location"],
            cloud=row["cloud"],
            secret_id=row["secret_id"],
            ssh_secret_id=row["ssh_secret_id"],
            version=row["version"],
            status=ClusterStatus(row["status"]),
            status_message=row["status_message"],
            created_by=row["created_by"],
            created_at=_ts(row["created_at"]),
            properties=json.loads(row["properties"] or "{}"),
            node_pools=tuple(self._to_node_pool(r) for r in pool_rows),
        )

    def save(self, cluster: ClusterSpec) -> ClusterSpec:
        """Upsert the cluster and replace its node pool set atomically.

        Returns the cluster as stored, with ids and creation timestamps
        assigned. Domain events are carried over from the argument.
        """
        assert self._conn is not None
        now = datetime.now(UTC).isoformat()
        with self._conn:
            if cluster.id is None:
                cursor = self._conn.execute(
                    """INSERT INTO clusters
                       (name, organization_id, location, cloud, secret_id, ssh_secret_id,
                        version, status, status_message, created_by, created_at, properties)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                    (cluster.name, cluster.organization_id, cluster.location,
                     cluster.cloud, cluster.secret_id, cluster.ssh_secret_id,
                     cluster.version, cluster.status.value, cluster.status_message,
                     cluster.created_by,
                     cluster.created_at.isoformat() if cluster.created_at else now,
                     json.dumps(cluster.properties)),
                )
                cluster_id = cursor.lastrowid
            else:
                cluster_id = cluster.id
                cursor = self._conn.execute(
                    """UPDATE clusters
                       SET version = ?, status = ?, status_message = ?, properties = ?
                       WHERE id = ?""",
                    (cluster.version, cluster.status.value, cluster.status_message,
                     json.dumps(cluster.properties), cluster_id),
                )
                if cursor.rowcount == 0:
                    raise ClusterNotFoundError(f"Cluster {cluster_id} not found")

            names = [np.name for np in cluster.node_pools]
            placeholders = ",".join("?" for _ in names)
            if names:
                self._conn.execute(
                    f"DELETE FROM node_pools WHERE cluster_id = ? AND name NOT IN ({placeholders})",
                    (cluster_id, *names),
                )
            else:
                self._conn.execute("DELETE FROM node_pools WHERE cluster_id = ?", (cluster_id,))

            for np in cluster.node_pools:
                self._conn.execute(
                    """INSERT INTO node_pools
                       (cluster_id, name, instance_type, image, spot_price, count,
                        autoscaling, min_count, max_count, created_by, created_at)
                       VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                       ON CONFLICT (cluster_id, name) DO UPDATE SET
                           instance_type = excluded.instance_type,
                           image = excluded.image,
                           spot_price = excluded.spot_price,
                           count = excluded.count,
                           autoscaling = excluded.autoscaling,
                           min_count = excluded.min_count,
                           max_count = excluded.max_count""",
                    (cluster_id, np.name, np.instance_type, np.image, np.spot_price,
                     np.count, int(np.autoscaling), np.min_count, np.max_count,
                     np.created_by,
                     np.created_at.isoformat() if np.created_at else now),
                )

        logger.debug(
            "Saved cluster %s (id=%s) with %d node pool(s)",
            cluster.name, cluster_id, len(cluster.node_pools),
        )
        return replace(self.load(cluster_id), domain_events=cluster.domain_events)

    def delete(self, cluster: ClusterSpec) -> None:
        """Remove the cluster record and its node pools."""
        assert self._conn is not None
        with self._conn:
            self._conn.execute("DELETE FROM clusters WHERE id = ?", (cluster.id,))
        logger.info("Deleted cluster record %s (id=%s)", cluster.name, cluster.id)

    def update_status(
        self, cluster_id: int, status: ClusterStatus, message: str = ""
    ) -> None:
        """Persist a status change without touching the node pool set."""
        assert self._conn is not None
        with self._conn:
            cursor = self._conn.execute(
                "UPDATE clusters SET status = ?, status_message = ? WHERE id = ?",
                (status.value, message, cluster_id),
            )
        if cursor.rowcount == 0:
            raise ClusterNotFoundError(f"Cluster {cluster_id} not found")

    # -- Helpers -------------------------------------------------------------

    @staticmethod
    def _to_node_pool(row: sqlite3.Row) -> NodePoolCurrent:
        return NodePoolCurrent(
            id=row["id"],
            cluster_id=row["cluster_id"],
            name=row["name"],
            instance_type=row["instance_type"],
            image=row["image"],
            spot_price=row["spot_price"],
            count=row["count"],
            autoscaling=bool(row["autoscaling"]),
            min_count=row["min_count"],
            max_count=row["max_count"],
            created_by=row["created_by"],
            created_at=_ts(row["created_at"]),
        )

from datetime import datetime
from volback import db


class BackupHistory(db.Model):
    """Backup execution history and logs"""
    __tablename__ = 'backup_history'

    id = db.Column(db.Integer, primary_key=True)
    volume_name = db.Column(db.String(255), nullable=False, index=True)
    status = db.Column(db.String(20), nullable=False)  # running, success, failed
    started_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    completed_at = db.Column(db.DateTime)
    archive_path = db.Column(db.String(1024))
    file_size_bytes = db.Column(db.BigInteger)
    retention_kept = db.Column(db.Integer)
    retention_deleted = db.Column(db.Integer)
    error_message = db.Column(db.Text)
    logs = db.Column(db.Text)  # Detailed execution logs

    def __repr__(self):
        return f'<BackupHistory volume={self.volume_name} status={self.status}>'


class RestoreHistory(db.Model):
    """Restore session outcome"""
    __tablename__ = 'restore_history'

    id = db.Column(db.Integer, primary_key=True)
    volume_name = db.Column(db.String(255), nullable=False, index=True)
    archive_path = db.Column(db.String(1024), nullable=False)
    final_state = db.Column(db.String(20), nullable=False)  # done, cancelled, failed
    stopped_containers = db.Column(db.Text)  # Comma separated, in stop order
    started_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    completed_at = db.Column(db.DateTime)
    error_message = db.Column(db.Text)
    logs = db.Column(db.Text)

    def __repr__(self):
        return f'<RestoreHistory volume={self.volume_name} state={self.final_state}>'

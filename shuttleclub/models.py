from shuttleclub.app import db
from shuttleclub.time_utils import utcnow_naive


def _iso(value):
    return value.isoformat() if value else None


def _hhmm(value):
    return value.strftime('%H:%M') if value else None


class Member(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    password_hash = db.Column(db.String(256), nullable=False)
    display_name = db.Column(db.String(120), default='')
    avatar_url = db.Column(db.String(500), default='')
    is_admin = db.Column(db.Boolean, default=False, nullable=False)
    is_banned = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    def to_dict(self):
        return {
            'id': self.id, 'username': self.username, 'email': self.email,
            'display_name': self.display_name or self.username,
            'avatar_url': self.avatar_url,
            'is_admin': bool(self.is_admin), 'is_banned': bool(self.is_banned),
            'created_at': _iso(self.created_at),
        }

    def to_public_dict(self):
        return {
            'id': self.id,
            'display_name': self.display_name or self.username,
            'avatar_url': self.avatar_url,
        }


class CoreMember(db.Model):
    """Membership in the core set; core members skip the court fee."""
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('member.id'), unique=True, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    member = db.relationship('Member', backref=db.backref('core_membership', uselist=False))


# ── Club configuration ────────────────────────────────────────────────

class ClubSettings(db.Model):
    """Single-row settings used when generating a month of sessions."""
    id = db.Column(db.Integer, primary_key=True)
    session_price = db.Column(db.Integer, nullable=False)
    max_members = db.Column(db.Integer, nullable=False)
    updated_at = db.Column(db.DateTime, default=lambda: utcnow_naive(),
                           onupdate=lambda: utcnow_naive())
    updated_by = db.Column(db.Integer, db.ForeignKey('member.id'), nullable=True)

    def to_dict(self):
        return {
            'session_price': self.session_price,
            'max_members': self.max_members,
            'updated_at': _iso(self.updated_at),
            'updated_by': self.updated_by,
        }


class Location(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    address = db.Column(db.String(500), default='')
    created_by = db.Column(db.Integer, db.ForeignKey('member.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'address': self.address}


class DaySetting(db.Model):
    """Weekly schedule entry. day_of_week: 0 = Sunday ... 6 = Saturday."""
    id = db.Column(db.Integer, primary_key=True)
    day_of_week = db.Column(db.Integer, unique=True, nullable=False)
    play_time = db.Column(db.Time, nullable=False)
    court_count = db.Column(db.Integer, default=1, nullable=False)
    location_id = db.Column(db.Integer, db.ForeignKey('location.id'), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    updated_at = db.Column(db.DateTime, default=lambda: utcnow_naive(),
                           onupdate=lambda: utcnow_naive())

    location = db.relationship('Location')

    def to_dict(self):
        return {
            'id': self.id, 'day_of_week': self.day_of_week,
            'play_time': _hhmm(self.play_time),
            'court_count': self.court_count,
            'location': self.location.to_dict() if self.location else None,
            'is_active': bool(self.is_active),
        }


# ── Sessions and attendance ───────────────────────────────────────────

class PlaySession(db.Model):
    """One scheduled playing occasion. Cancelled by clearing is_active."""
    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.Date, unique=True, nullable=False)
    day_of_week = db.Column(db.Integer, nullable=False)
    start_time = db.Column(db.Time, nullable=False)
    end_time = db.Column(db.Time, nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    can_pay = db.Column(db.Boolean, default=False, nullable=False)
    court_count = db.Column(db.Integer, default=1, nullable=False)
    session_cost = db.Column(db.Integer, default=0, nullable=False)
    max_members = db.Column(db.Integer, nullable=False)
    location_id = db.Column(db.Integer, db.ForeignKey('location.id'), nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey('member.id'), nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    location = db.relationship('Location')
    participants = db.relationship('SessionParticipant', backref='session', lazy='joined',
                                   cascade='all, delete-orphan')
    expenses = db.relationship('ExtraExpense', backref='session',
                               cascade='all, delete-orphan',
                               order_by='ExtraExpense.created_at')
    opt_outs = db.relationship('CoreMemberOptOut', backref='session',
                               cascade='all, delete-orphan')

    def total_slots(self):
        return sum(p.slot_count or 1 for p in self.participants)

    def to_dict(self, include_roster=True):
        data = {
            'id': self.id,
            'date': _iso(self.date),
            'day_of_week': self.day_of_week,
            'start_time': _hhmm(self.start_time),
            'end_time': _hhmm(self.end_time),
            'is_active': bool(self.is_active),
            'can_pay': bool(self.can_pay),
            'court_count': self.court_count,
            'session_cost': self.session_cost,
            'max_members': self.max_members,
            'location': self.location.to_dict() if self.location else None,
            'total_slots': self.total_slots(),
        }
        if include_roster:
            data['participants'] = [p.to_dict() for p in self.participants]
            data['paid_members'] = [p.user_id for p in self.participants if p.has_paid]
            data['expenses'] = [e.to_dict() for e in self.expenses]
            data['opted_out'] = [o.user_id for o in self.opt_outs]
        return data


class SessionParticipant(db.Model):
    """Attendance of one member in one session; slot_count covers guests."""
    __table_args__ = (
        db.UniqueConstraint('session_id', 'user_id', name='uq_session_participant'),
        db.CheckConstraint('slot_count >= 1', name='ck_participant_slot_count'),
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('play_session.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('member.id'), nullable=False)
    slot_count = db.Column(db.Integer, default=1, nullable=False)
    has_paid = db.Column(db.Boolean, default=False, nullable=False)
    joined_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    member = db.relationship('Member', backref='participations')

    def to_dict(self):
        return {
            'id': self.id, 'session_id': self.session_id,
            'user_id': self.user_id, 'slot_count': self.slot_count,
            'has_paid': bool(self.has_paid),
            'joined_at': _iso(self.joined_at),
            'member': self.member.to_public_dict() if self.member else None,
        }


class CoreMemberOptOut(db.Model):
    """Stops auto-enrollment of a core member into one session."""
    __table_args__ = (
        db.UniqueConstraint('session_id', 'user_id', name='uq_core_opt_out'),
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('play_session.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('member.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())


class ExtraExpense(db.Model):
    """Ad-hoc cost (shuttlecocks, water) split pro-rata like the court fee."""
    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('play_session.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('member.id'), nullable=False)
    amount = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(500), default='')
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    member = db.relationship('Member')

    def to_dict(self):
        return {
            'id': self.id, 'session_id': self.session_id,
            'user_id': self.user_id,
            'user_name': (self.member.display_name or self.member.username) if self.member else 'Unknown User',
            'amount': self.amount, 'description': self.description or '',
            'created_at': _iso(self.created_at),
        }


# ── Payments ──────────────────────────────────────────────────────────

class PaymentRequest(db.Model):
    """Manual payment confirmation awaiting an admin decision."""
    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('play_session.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('member.id'), nullable=False)
    amount = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), default='pending', nullable=False)  # pending, approved, rejected
    notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())
    processed_at = db.Column(db.DateTime, nullable=True)
    processed_by = db.Column(db.Integer, db.ForeignKey('member.id'), nullable=True)

    member = db.relationship('Member', foreign_keys=[user_id])
    session = db.relationship('PlaySession')

    def to_dict(self):
        return {
            'id': self.id, 'session_id': self.session_id,
            'user_id': self.user_id, 'amount': self.amount,
            'status': self.status, 'notes': self.notes,
            'created_at': _iso(self.created_at),
            'processed_at': _iso(self.processed_at),
            'processed_by': self.processed_by,
            'member': self.member.to_public_dict() if self.member else None,
            'session': {
                'date': _iso(self.session.date),
                'start_time': _hhmm(self.session.start_time),
            } if self.session else None,
        }


class GatewayTransaction(db.Model):
    """Mobile-wallet order created for one participant's payment."""
    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(64), unique=True, nullable=False)
    request_id = db.Column(db.String(64), nullable=False)
    session_id = db.Column(db.Integer, db.ForeignKey('play_session.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('member.id'), nullable=False)
    participant_id = db.Column(db.Integer, db.ForeignKey('session_participant.id',
                                                         ondelete='SET NULL'), nullable=True)
    amount = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), default='pending', nullable=False)  # pending, success, failed, amount_mismatch
    is_processed = db.Column(db.Boolean, default=False, nullable=False)
    is_verified = db.Column(db.Boolean, default=False, nullable=False)
    gateway_transaction_id = db.Column(db.String(64), nullable=True)
    pay_url = db.Column(db.String(1000), nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())
    processed_at = db.Column(db.DateTime, nullable=True)

    def to_dict(self):
        return {
            'order_id': self.order_id, 'session_id': self.session_id,
            'user_id': self.user_id, 'amount': self.amount,
            'status': self.status, 'is_processed': bool(self.is_processed),
            'is_verified': bool(self.is_verified),
            'pay_url': self.pay_url,
            'created_at': _iso(self.created_at),
            'processed_at': _iso(self.processed_at),
        }

"""
Base Models and Mixins
======================

Every business record (branches, groups, members, loans, payments,
expenses, assets) extends BaseModel:
- UUID primary key and created/updated timestamps
- Soft delete: delete() stamps deleted_at/deleted_by and the row drops
  out of `objects`; `all_objects` still sees it for audit and numbering

Mixins:
- CreatedByMixin: the staff user who captured the record
- ApprovalWorkflowMixin: pending -> approved | rejected, decided once
- StatusTrackingMixin: active flag with who/when/why of deactivation
"""

from django.db import models
from django.utils import timezone
import uuid


class SoftDeleteManager(models.Manager):
    """Hides soft-deleted rows"""

    def get_queryset(self):
        return super().get_queryset().filter(deleted_at__isnull=True)


class BaseModel(models.Model):

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    # Soft delete
    deleted_at = models.DateTimeField(null=True, blank=True, db_index=True)
    deleted_by = models.ForeignKey(
        'microfinance.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+',
    )

    objects = SoftDeleteManager()
    all_objects = models.Manager()

    class Meta:
        abstract = True
        ordering = ['-created_at']

    def delete(self, using=None, keep_parents=False, deleted_by=None, hard=False):
        """
        Soft delete. The row is kept so that numbering sequences, payment
        history and reports stay intact. hard=True removes it for good.
        """
        if hard:
            return super().delete(using=using, keep_parents=keep_parents)
        self.deleted_at = timezone.now()
        self.deleted_by = deleted_by
        self.save(using=using, update_fields=['deleted_at', 'deleted_by', 'updated_at'])

    def restore(self):
        if self.deleted_at is None:
            return
        self.deleted_at = None
        self.deleted_by = None
        self.save(update_fields=['deleted_at', 'deleted_by', 'updated_at'])

    @property
    def is_deleted(self):
        return self.deleted_at is not None


class CreatedByMixin(models.Model):

    created_by = models.ForeignKey(
        'microfinance.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='%(class)s_created',
    )

    class Meta:
        abstract = True


class ApprovalWorkflowMixin(models.Model):
    """
    A record that waits for a second pair of eyes. The decision is taken
    once; approving or rejecting anything but a pending record raises
    ValueError. Callers save the record themselves.
    """

    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'

    APPROVAL_STATUS_CHOICES = [
        (PENDING, 'Pending Approval'),
        (APPROVED, 'Approved'),
        (REJECTED, 'Rejected'),
    ]

    approval_status = models.CharField(
        max_length=20,
        choices=APPROVAL_STATUS_CHOICES,
        default=PENDING,
        db_index=True
    )
    # Set for rejections too: the user who took the decision
    approved_by = models.ForeignKey(
        'microfinance.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='%(class)s_approved',
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    rejection_reason = models.TextField(blank=True)

    class Meta:
        abstract = True

    def _decide(self, outcome, user):
        if self.approval_status != self.PENDING:
            raise ValueError(
                f"Only pending records can be {outcome} (currently {self.get_approval_status_display().lower()})"
            )
        self.approval_status = outcome
        self.approved_by = user
        self.approved_at = timezone.now()

    def mark_approved(self, approved_by):
        self._decide(self.APPROVED, approved_by)

    def mark_rejected(self, rejected_by, reason=''):
        self._decide(self.REJECTED, rejected_by)
        self.rejection_reason = reason

    @property
    def is_approved(self):
        return self.approval_status == self.APPROVED

    @property
    def is_pending_approval(self):
        return self.approval_status == self.PENDING


class StatusTrackingMixin(models.Model):
    """Active flag for branches, groups and staff accounts"""

    is_active = models.BooleanField(default=True, db_index=True)
    deactivated_at = models.DateTimeField(null=True, blank=True)
    deactivated_by = models.ForeignKey(
        'microfinance.User',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='%(class)s_deactivated',
    )
    deactivation_reason = models.TextField(blank=True)

    STATUS_FIELDS = ['is_active', 'deactivated_at', 'deactivated_by', 'deactivation_reason']

    class Meta:
        abstract = True

    def activate(self):
        self.is_active = True
        self.deactivated_at = None
        self.deactivated_by = None
        self.deactivation_reason = ''
        self.save(update_fields=self.STATUS_FIELDS)

    def deactivate(self, deactivated_by=None, reason=''):
        """Deactivated branches and groups take no new members; deactivated staff cannot sign in"""
        self.is_active = False
        self.deactivated_at = timezone.now()
        self.deactivated_by = deactivated_by
        self.deactivation_reason = reason
        self.save(update_fields=self.STATUS_FIELDS)

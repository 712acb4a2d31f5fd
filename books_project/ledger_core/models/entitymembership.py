from django.conf import settings
from django.contrib.auth.models import AbstractUser
from django.db import models
from django.utils.text import slugify

from ..managers import UserManager


# ---------- Tenant / Company ----------
class Company(models.Model):
    """Tenant / Organization. Every ledger row is scoped to one company."""

    name = models.CharField(max_length=200)
    # URL-friendly identifier, generated from name when left blank
    slug = models.SlugField(max_length=80, unique=True, blank=True)

    # Link to the user who created / administers the company
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="owned_companies",
    )

    # Functional currency; all ledger amounts are stored in it
    currency_code = models.CharField(max_length=10, default="USD")

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name_plural = "companies"

    def __str__(self):
        return self.name

    def _unique_slug(self, max_tries=100):
        base = slugify(self.name) or "company"
        slug = base
        i = 1
        # "test-ltd" -> "test-ltd-1" -> "test-ltd-2"
        while Company.objects.filter(slug=slug).exclude(pk=self.pk).exists():
            slug = f"{base}-{i}"
            i += 1
            if i > max_tries:
                raise RuntimeError("Couldn't generate unique slug")
        return slug

    def save(self, *args, **kwargs):
        if not self.slug:
            self.slug = self._unique_slug()
        return super().save(*args, **kwargs)


# ---------- Custom User ----------
class User(AbstractUser):
    """
    AUTH_USER_MODEL = "ledger_core.User" must be set before the first migrate.
    """

    # The tenant the user works in by default
    default_company = models.ForeignKey(
        "Company",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="default_users",
    )

    objects = UserManager()

    class Meta:
        indexes = [models.Index(fields=["default_company"], name="user_default_company_idx")]

    def __str__(self):
        return self.get_full_name() or self.username

from __future__ import annotations

import uuid
from django.db import models


class Category(models.Model):
    class Meta:
        db_table = 'category'
        verbose_name = 'category'
        verbose_name_plural = 'categories'
        ordering = ('name',)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=120)
    # The slug doubles as the routing key for fulfillment (network/provider maps).
    slug = models.SlugField(max_length=120, unique=True)
    created_at = models.DateTimeField(auto_now_add=True, db_column='createdAt')

    def __str__(self):
        return self.name or self.slug


class Product(models.Model):
    class Meta:
        db_table = 'product'
        verbose_name = 'product'
        verbose_name_plural = 'products'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    category = models.ForeignKey(
        Category,
        related_name='products',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        db_column='categoryId',
    )
    name = models.CharField(max_length=255)
    slug = models.SlugField(max_length=160, unique=True)
    description = models.TextField(null=True, blank=True)
    price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    agent_price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True, db_column='agentPrice')
    stock = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True, db_column='isActive')
    created_at = models.DateTimeField(auto_now_add=True, db_column='createdAt')
    updated_at = models.DateTimeField(auto_now=True, db_column='updatedAt')

    @property
    def category_slug(self) -> str:
        return (self.category.slug if self.category_id and self.category else '') or ''

    def __str__(self):
        return self.name or f"Product {self.id}"

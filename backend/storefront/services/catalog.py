"""
Catalog helpers - category slugs, attribute validation, CSV import/export
"""

import csv
import io
import re
from typing import Any, Dict, List, Optional

PLACEHOLDER_IMAGE = "https://via.placeholder.com/150"
BASE_COLUMNS = ["name", "description", "price", "category", "stock", "cover_image", "images"]
ATTRIBUTE_PREFIX = "attribute_"

class AttributeValidationError(ValueError):
    pass

def slugify(name: str) -> str:
    return re.sub(r'[^a-z0-9]+', '-', name.lower()).strip('-')

def validate_product_attributes(attributes: Optional[Dict[str, Any]], category: dict) -> Dict[str, Any]:
    """Check product attribute values against the category's definitions"""
    attributes = attributes or {}
    for definition in category.get('attributes', []):
        name = definition['name']
        if name not in attributes:
            if definition.get('required'):
                raise AttributeValidationError(f'Required attribute "{name}" is missing')
            continue

        value = attributes[name]
        attr_type = definition.get('type', 'text')
        options = definition.get('options') or []
        if attr_type == 'number':
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise AttributeValidationError(f'Attribute "{name}" must be a number')
        elif attr_type == 'boolean':
            if not isinstance(value, bool):
                raise AttributeValidationError(f'Attribute "{name}" must be a boolean')
        elif attr_type == 'select':
            if value not in options:
                raise AttributeValidationError(f'Invalid value for attribute "{name}"')
        elif attr_type == 'multiselect':
            if not isinstance(value, list) or not all(v in options for v in value):
                raise AttributeValidationError(f'Invalid value for attribute "{name}"')
    return attributes

def is_low_stock(product: dict) -> bool:
    return product.get('stock', 0) <= product.get('low_stock_threshold', 10)

# ==================== CSV EXPORT ====================

def _format_attribute(value) -> str:
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return "" if value is None else str(value)

def export_products_csv(products: List[dict], categories: List[dict]) -> str:
    categories_by_id = {c['id']: c for c in categories}
    attribute_names = []
    for category in categories:
        for definition in category.get('attributes', []):
            if definition['name'] not in attribute_names:
                attribute_names.append(definition['name'])

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(BASE_COLUMNS + [ATTRIBUTE_PREFIX + name for name in attribute_names])
    for product in products:
        category = categories_by_id.get(product.get('category_id'))
        attributes = product.get('attributes') or {}
        writer.writerow([
            product.get('name', ''),
            product.get('description', ''),
            product.get('price', 0),
            category['name'] if category else "Uncategorized",
            product.get('stock', 0),
            product.get('cover_image', ''),
            ", ".join(product.get('images', [])),
        ] + [_format_attribute(attributes.get(name)) for name in attribute_names])
    return output.getvalue()

# ==================== CSV IMPORT ====================

def read_csv_rows(csv_data: str) -> List[dict]:
    reader = csv.DictReader(io.StringIO(csv_data.strip()))
    rows = [row for row in reader if any(isinstance(v, str) and v.strip() for v in row.values())]
    if not rows:
        raise AttributeValidationError("No rows found in CSV data")
    for index, row in enumerate(rows, start=2):
        if not (row.get('name') or '').strip():
            raise AttributeValidationError(f"Row {index}: name is required")
        if not (row.get('category') or '').strip():
            raise AttributeValidationError(f'Row {index}: category is required for product "{row["name"]}"')
    return rows

def _parse_attribute(definition: dict, raw: str, product_name: str):
    name = definition['name']
    attr_type = definition.get('type', 'text')
    options = definition.get('options') or []
    if attr_type == 'number':
        try:
            return float(raw) if '.' in raw else int(raw)
        except ValueError:
            raise AttributeValidationError(
                f'Invalid number value for attribute "{name}" in product "{product_name}"'
            )
    if attr_type == 'boolean':
        return raw.lower() == 'true'
    if attr_type == 'select':
        if raw not in options:
            raise AttributeValidationError(
                f'Invalid option "{raw}" for attribute "{name}" in product "{product_name}"'
            )
        return raw
    if attr_type == 'multiselect':
        values = [v.strip() for v in raw.split(',') if v.strip()]
        invalid = [v for v in values if v not in options]
        if invalid:
            raise AttributeValidationError(
                f'Invalid options "{", ".join(invalid)}" for attribute "{name}" in product "{product_name}"'
            )
        return values
    return raw

def product_from_csv_row(row: dict, category: dict) -> dict:
    """Turn one CSV row into product fields; raises AttributeValidationError"""
    name = row['name'].strip()
    attributes = {}
    for definition in category.get('attributes', []):
        raw = (row.get(ATTRIBUTE_PREFIX + definition['name']) or '').strip()
        if not raw:
            if definition.get('required'):
                raise AttributeValidationError(
                    f'Required attribute "{definition["name"]}" is missing for product "{name}"'
                )
            continue
        attributes[definition['name']] = _parse_attribute(definition, raw, name)

    try:
        price = float(row.get('price') or 0)
        stock = int(float(row.get('stock') or 0))
    except ValueError:
        raise AttributeValidationError(f'Invalid price or stock for product "{name}"')
    if price < 0 or stock < 0:
        raise AttributeValidationError(f'Price and stock cannot be negative for product "{name}"')

    images = row.get('images') or ''
    return {
        "name": name,
        "description": (row.get('description') or '').strip(),
        "price": price,
        "stock": stock,
        "cover_image": (row.get('cover_image') or '').strip() or PLACEHOLDER_IMAGE,
        "images": [url.strip() for url in images.split(',') if url.strip()],
        "attributes": attributes
    }

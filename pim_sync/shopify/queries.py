# pim_sync/shopify/queries.py
# GraphQL documents used by the sync pipeline.

PRODUCT_FIELDS = """
  id
  title
  handle
  variants(first: 250) {
    edges { node { id sku title selectedOptions { name value } image { id } } }
  }
"""

PRODUCTS_SEARCH = """
query ($q: String!, $first: Int!) {
  products(first: $first, query: $q) {
    edges { node { %s } }
  }
}
""" % PRODUCT_FIELDS

PRODUCT_WITH_MEDIA = """
query ($id: ID!) {
  product(id: $id) {
    %s
    media(first: 100) {
      edges { node { id alt ... on MediaImage { image { url } } } }
    }
  }
}
""" % PRODUCT_FIELDS

PRODUCT_CREATE = """
mutation ($input: ProductInput!) {
  productCreate(input: $input) {
    product { id title handle variants(first: 1) { edges { node { id } } } }
    userErrors { field message }
  }
}
"""

PRODUCT_UPDATE = """
mutation ($input: ProductInput!) {
  productUpdate(input: $input) {
    product { id title }
    userErrors { field message }
  }
}
"""

VARIANTS_BULK_CREATE = """
mutation ($productId: ID!, $variants: [ProductVariantsBulkInput!]!, $strategy: ProductVariantsBulkCreateStrategy) {
  productVariantsBulkCreate(productId: $productId, variants: $variants, strategy: $strategy) {
    productVariants { id sku }
    userErrors { field message code }
  }
}
"""

FILES_SEARCH = """
query ($q: String!) {
  files(first: 50, query: $q) {
    edges { node { id alt ... on MediaImage { image { url } } } }
  }
}
"""

FILE_CREATE = """
mutation ($files: [FileCreateInput!]!) {
  fileCreate(files: $files) {
    files { id alt ... on MediaImage { image { url } } }
    userErrors { field message }
  }
}
"""

FILE_ATTACH = """
mutation ($files: [FileUpdateInput!]!) {
  fileUpdate(files: $files) {
    files { id }
    userErrors { field message code }
  }
}
"""

VARIANT_APPEND_MEDIA = """
mutation ($productId: ID!, $variantMedia: [ProductVariantAppendMediaInput!]!) {
  productVariantAppendMedia(productId: $productId, variantMedia: $variantMedia) {
    productVariants { id }
    userErrors { field message }
  }
}
"""

VARIANTS_BULK_UPDATE = """
mutation ($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {
  productVariantsBulkUpdate(productId: $productId, variants: $variants) {
    productVariants { id }
    userErrors { field message }
  }
}
"""

VARIANT_UPDATE_IMAGE = """
mutation ($input: ProductVariantInput!) {
  productVariantUpdate(input: $input) {
    productVariant { id }
    userErrors { field message }
  }
}
"""

METAFIELD_DEFINITIONS = """
query ($namespace: String!, $key: String!, $ownerType: MetafieldOwnerType!) {
  metafieldDefinitions(first: 50, namespace: $namespace, key: $key, ownerType: $ownerType) {
    edges { node { id namespace key type { name } } }
  }
}
"""

METAFIELD_DEFINITION_CREATE = """
mutation ($definition: MetafieldDefinitionInput!) {
  metafieldDefinitionCreate(definition: $definition) {
    createdDefinition { id namespace key }
    userErrors { field message code }
  }
}
"""

METAFIELDS_SET = """
mutation ($metafields: [MetafieldsSetInput!]!) {
  metafieldsSet(metafields: $metafields) {
    metafields { id key namespace }
    userErrors { field message code }
  }
}
"""

METAOBJECT_DEFINITION = """
query ($type: String!) {
  metaobjectDefinitionByType(type: $type) { id type }
}
"""

METAOBJECT_DEFINITION_CREATE = """
mutation ($definition: MetaobjectDefinitionCreateInput!) {
  metaobjectDefinitionCreate(definition: $definition) {
    metaobjectDefinition { id type }
    userErrors { field message code }
  }
}
"""

METAOBJECTS_BY_TYPE = """
query ($type: String!, $first: Int!, $after: String) {
  metaobjects(type: $type, first: $first, after: $after) {
    edges { node { id handle fields { key value } } }
    pageInfo { hasNextPage endCursor }
  }
}
"""

METAOBJECT_CREATE = """
mutation ($metaobject: MetaobjectCreateInput!) {
  metaobjectCreate(metaobject: $metaobject) {
    metaobject { id handle }
    userErrors { field message code }
  }
}
"""

METAOBJECT_UPDATE = """
mutation ($id: ID!, $metaobject: MetaobjectUpdateInput!) {
  metaobjectUpdate(id: $id, metaobject: $metaobject) {
    metaobject { id }
    userErrors { field message code }
  }
}
"""

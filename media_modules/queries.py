"""
GraphQL documents used by the upload pipeline.
"""

FILE_FIELDS = """
    id
    fileStatus
    alt
    createdAt
    fileErrors {
      code
      message
      details
    }
    preview {
      status
      image {
        url
      }
    }
    ... on MediaImage {
      image {
        width
        height
        url
        originalSrc
        transformedSrc
        src
      }
    }
    ... on GenericFile {
      url
    }
    ... on Video {
      sources {
        url
      }
    }
"""

STAGED_UPLOADS_CREATE = """
mutation stagedUploadsCreate($input: [StagedUploadInput!]!) {
  stagedUploadsCreate(input: $input) {
    stagedTargets {
      url
      resourceUrl
      parameters {
        name
        value
      }
    }
    userErrors {
      field
      message
    }
  }
}
"""

FILE_CREATE = """
mutation fileCreate($files: [FileCreateInput!]!) {
  fileCreate(files: $files) {
    files {
%s
    }
    userErrors {
      field
      message
      code
    }
  }
}
""" % FILE_FIELDS

FILE_UPDATE = """
mutation fileUpdate($files: [FileUpdateInput!]!) {
  fileUpdate(files: $files) {
    files {
%s
    }
    userErrors {
      field
      message
      code
    }
  }
}
""" % FILE_FIELDS

FILE_BY_ID = """
query getFile($id: ID!) {
  node(id: $id) {
    ... on File {
%s
    }
  }
}
""" % FILE_FIELDS

METAFIELDS_SET = """
mutation metafieldsSet($metafields: [MetafieldsSetInput!]!) {
  metafieldsSet(metafields: $metafields) {
    metafields {
      id
      namespace
      key
      value
      type
    }
    userErrors {
      field
      message
      code
    }
  }
}
"""

OWNER_METAFIELDS = """
query ownerMetafields($id: ID!, $first: Int!) {
  node(id: $id) {
    ... on HasMetafields {
      metafields(first: $first) {
        edges {
          node {
            id
            namespace
            key
            value
            type
          }
        }
      }
    }
  }
}
"""

METAFIELDS_DELETE = """
mutation metafieldsDelete($metafields: [MetafieldIdentifierInput!]!) {
  metafieldsDelete(metafields: $metafields) {
    deletedMetafields {
      ownerId
      namespace
      key
    }
    userErrors {
      field
      message
    }
  }
}
"""

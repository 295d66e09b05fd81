#!/usr/bin/env python3
"""
Load tab-separated feature files into a vector store and query them.

Each file becomes one entity in the example schema, named after the file,
with a string 'id' column and a 'feature' vector column. Every file is
loaded in its own transaction; a file that fails to load is rolled back
and the others carry on.
"""

import logging
import os

import vectorlink
from vectorlink import Column, Distance


log = logging.getLogger('features')


def dimension_of(path):
    """ Return the length of the first feature vector in *path*. """

    with open(path, 'r') as handle:
        for row in vectorlink.loader.read_features(handle, 'probe.probe'):
            return row.get('feature').dimension

    raise ValueError('no features in ' + path)


def entity_name(path):
    name = os.path.basename(path)
    return name.split('.', 1)[0]


def load(client, schema, path):

    definition = vectorlink.loader.feature_entity(schema + '.' + entity_name(path), dimension_of(path))
    client.create_entity(definition)

    tx = client.begin()

    try:
        with tx.insert_stream() as stream:
            for row in vectorlink.loader.read_features(path, definition.entity):
                stream.send(row)
    except vectorlink.VectorLinkError:
        log.exception('loading %s failed, rolling back', path)
        tx.rollback()
        return None

    tx.commit()
    log.info('loaded %d rows into %s', stream.count, definition.entity.fqn)
    return definition


def show(title, rows):
    print(title)
    for row in rows:
        print('   ', dict(row))


def main(arguments):

    client = vectorlink.connect(arguments.address, arguments.port)

    if arguments.drop:
        try:
            client.drop_schema(arguments.schema)
        except vectorlink.RemoteError as e:
            log.info('not dropping %s: %s', arguments.schema, e)

    client.create_schema(arguments.schema)

    for path in arguments.files:
        definition = load(client, arguments.schema, path)
        if definition is None:
            continue

        entity = definition.entity
        dimension = definition.column('feature').dimension

        query = client.query(entity).select('*').limit(3)
        show('First rows of %s:' % (entity.fqn), client.execute(query))

        first = client.execute(client.query(entity).select('id').limit(1)).first()
        query = client.query(entity).select('id').where(Column('id').isin(first['id']))
        show('Selected by id from %s:' % (entity.fqn), client.execute(query))

        vector = vectorlink.loader.random_vector(dimension)
        query = client.query(entity).select('id', 'distance').knn('feature', vector, k=arguments.k, distance=Distance.L2)
        show('%d nearest neighbors in %s:' % (arguments.k, entity.fqn), client.execute(query))

    client.close()


if __name__ == '__main__':
    import argparse

    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument('files', nargs='+', help='Tab-separated feature files to load')
    parser.add_argument('--address', default=None, help='Engine address, overriding the configured value')
    parser.add_argument('--port', type=int, default=None, help='Engine port, overriding the configured value')
    parser.add_argument('--schema', default='vectorlink_example', help='Schema to create the entities in')
    parser.add_argument('--drop', action='store_true', help='Drop the schema first, if it exists')
    parser.add_argument('-k', type=int, default=10, help='Number of nearest neighbors to retrieve')

    logging.basicConfig(level=logging.INFO, format='%(levelname)s %(message)s')
    main(parser.parse_args())
